"""
Pure scoring: (answers, items, total-weight snapshot) -> raw score and percentage.

An item contributes its full weight when the chosen label equals its correct
label, otherwise nothing. The percentage denominator is the snapshot taken at
attempt start, not the live item bank, so later item edits do not move it.
"""
from dataclasses import dataclass
from typing import Iterable, Mapping

from .schemas import Item


@dataclass(frozen=True)
class Score:
    raw: int
    percentage: float


def raw_score(answers: Mapping[str, str], items: Iterable[Item]) -> int:
    return sum(item.marks for item in items if answers.get(item.id) == item.correct_answer)


def percentage(raw: int, total_weight: int) -> float:
    if total_weight <= 0:
        return 0.0
    # raw can exceed the snapshot when item weights were raised after start
    return min(100.0, raw / total_weight * 100)


def score(answers: Mapping[str, str], items: Iterable[Item], total_weight: int) -> Score:
    raw = raw_score(answers, items)
    return Score(raw=raw, percentage=percentage(raw, total_weight))
