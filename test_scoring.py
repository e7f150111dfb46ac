"""Scoring: full weight or nothing per item, percentage against the start-time snapshot."""
import pytest

from examhall.schemas import Item
from examhall.scoring import percentage, raw_score, score


def make_item(n: int, correct: str = "A", marks: int = 1) -> Item:
    return Item(id=f"q{n}", exam_id="exam-1", question_text=f"Question {n}", option_a="a", option_b="b",
                option_c="c", option_d="d", correct_answer=correct, marks=marks)


WEIGHTS = [1, 2, 3, 5, 8]


@pytest.fixture
def bank():
    return [make_item(n, correct="ABCDA"[n], marks=w) for n, w in enumerate(WEIGHTS)]


def test_empty_answers_score_zero(bank):
    result = score({}, bank, sum(WEIGHTS))
    assert result.raw == 0
    assert result.percentage == 0.0


@pytest.mark.parametrize("correct_idx", [[], [0], [1, 3], [0, 2, 4], [0, 1, 2, 3, 4]])
def test_raw_is_sum_of_correct_weights(bank, correct_idx):
    answers = {}
    for i, item in enumerate(bank):
        # wrong label for everything not in correct_idx
        answers[item.id] = item.correct_answer if i in correct_idx else ("B" if item.correct_answer == "A" else "A")
    assert raw_score(answers, bank) == sum(WEIGHTS[i] for i in correct_idx)


def test_two_items_one_right_is_fifty_percent():
    items = [make_item(1, "A"), make_item(2, "B")]
    result = score({"q1": "A", "q2": "C"}, items, 2)
    assert result.raw == 1
    assert result.percentage == 50.0


def test_no_partial_credit_for_wrong_label():
    items = [make_item(1, "D", marks=10)]
    assert score({"q1": "C"}, items, 10).raw == 0


def test_answers_for_unknown_items_are_ignored(bank):
    assert raw_score({"not-an-item": "A"}, bank) == 0


def test_zero_snapshot_gives_zero_percentage():
    assert percentage(0, 0) == 0.0
    assert score({"q1": "A"}, [make_item(1, "A")], 0).percentage == 0.0


@pytest.mark.parametrize("raw,total", [(0, 5), (1, 5), (5, 5), (3, 7)])
def test_percentage_within_bounds(raw, total):
    assert 0.0 <= percentage(raw, total) <= 100.0


def test_percentage_uses_snapshot_and_caps_at_hundred():
    # weight raised to 4 after the attempt started with a snapshot of 2
    items = [make_item(1, "A", marks=4)]
    assert score({"q1": "A"}, items, 2).percentage == 100.0
    assert score({"q1": "A"}, items, 8).percentage == 50.0


def test_scoring_is_deterministic(bank):
    answers = {"q0": "A", "q2": "C"}
    assert score(answers, bank, 19) == score(dict(answers), list(bank), 19)
