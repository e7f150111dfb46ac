"""
Attempt engine: one timed, single attempt per participant per assessment.

AttemptEngine holds the stateless lifecycle operations against the remote
store (eligibility, start, answer capture, completion). AttemptSession is the
participant-side driver that owns the local answer buffer and the countdown
and funnels manual submit and clock expiry through the same completion path.

The existence of an exam_results row for (exam, participant) is the only
record of "already taken"; two racing starts are resolved by the store's
unique constraint, never by locking here.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from .clock import SessionClock, Sleep
from .config import EligibilityPolicy
from .errors import (
    AttemptClosed,
    AttemptNotFound,
    ExamHallError,
    ItemNotInAssessment,
    NotEligible,
    StartConflict,
    StoreError,
    SubmissionFailed,
    UniqueViolation,
)
from .item_bank import ItemBank
from .schemas import LABELS, Assessment, AttemptResult, Item
from .scoring import score
from .store import RecordStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class Eligibility(str, Enum):
    ELIGIBLE = "eligible"
    ALREADY_TAKEN = "already_taken"
    ENTRY_CLOSED = "entry_closed"
    UNAVAILABLE = "unavailable"


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


NOT_ELIGIBLE_MESSAGES = {
    Eligibility.ALREADY_TAKEN: "You have already taken this exam.",
    Eligibility.ENTRY_CLOSED: "Entry to this exam is closed.",
    Eligibility.UNAVAILABLE: "This exam is not publicly available.",
}


def _check_label(label: str) -> None:
    if label not in LABELS:
        raise ValueError(f"Answer must be one of {', '.join(LABELS)}, got {label!r}")


class AttemptEngine:
    """Lifecycle operations over the remote store. Holds no attempt state of its own."""

    def __init__(
        self,
        store: RecordStore,
        policy: EligibilityPolicy = EligibilityPolicy.BLOCK_ON_ANY_RESULT,
        now: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policy = policy
        self.now = now

    # ============= Read-only projections =============

    async def get_assessment(self, assessment_id: str) -> Assessment:
        assessment = await self.store.get(Assessment, {"id": assessment_id})
        if assessment is None:
            raise NotEligible("Exam not found.")
        return assessment

    async def list_open_assessments(self) -> List[Assessment]:
        """Public, active assessments, newest first."""
        return await self.store.list(
            Assessment, {"exam_privacy": "public", "is_active": True}, order="created_at", desc=True
        )

    async def load_item_bank(self, assessment_id: str) -> ItemBank:
        return await ItemBank.load(self.store, assessment_id)

    async def get_attempt(self, attempt_id: str) -> AttemptResult:
        attempt = await self.store.get(AttemptResult, {"id": attempt_id})
        if attempt is None:
            raise AttemptNotFound()
        return attempt

    async def find_attempt(self, assessment_id: str, participant_id: str) -> Optional[AttemptResult]:
        return await self.store.get(AttemptResult, {"exam_id": assessment_id, "student_id": participant_id})

    # ============= Eligibility =============

    def availability(self, assessment: Assessment) -> Eligibility:
        if not assessment.is_public or not assessment.is_active:
            return Eligibility.UNAVAILABLE
        if assessment.exam_entry_block_at and self.now() > _aware(assessment.exam_entry_block_at):
            return Eligibility.ENTRY_CLOSED
        return Eligibility.ELIGIBLE

    async def check_eligibility(
        self, assessment_id: str, participant_id: str, policy: Optional[EligibilityPolicy] = None
    ) -> Eligibility:
        """
        Decide whether the participant may start.

        BLOCK_ON_ANY_RESULT treats any existing record (even an abandoned,
        never-completed one) as already taken; BLOCK_ON_COMPLETED_ONLY only a
        completed one.
        """
        policy = policy or self.policy
        assessment = await self.get_assessment(assessment_id)
        existing = await self.find_attempt(assessment_id, participant_id)
        if existing is not None and (policy is EligibilityPolicy.BLOCK_ON_ANY_RESULT or existing.is_completed):
            return Eligibility.ALREADY_TAKEN
        return self.availability(assessment)

    # ============= Lifecycle =============

    async def start(self, assessment_id: str, participant_id: str) -> AttemptResult:
        """Persist a fresh attempt. A concurrent or repeated start surfaces StartConflict."""
        assessment = await self.get_assessment(assessment_id)
        available = self.availability(assessment)
        if available is not Eligibility.ELIGIBLE:
            raise NotEligible(NOT_ELIGIBLE_MESSAGES[available])
        row = {
            "id": str(uuid4()),
            "exam_id": assessment_id,
            "student_id": participant_id,
            "started_at": self.now(),
            "total_marks": assessment.total_marks,
            "score": 0,
            "percentage": 0,
            "answers": {},
        }
        try:
            attempt = await self.store.insert(AttemptResult, row)
        except UniqueViolation as e:
            logger.warning("Start conflict: participant %s already has an attempt at %s", participant_id, assessment_id)
            raise StartConflict() from e
        logger.info("Attempt %s started: participant=%s assessment=%s", attempt.id, participant_id, assessment_id)
        return attempt

    async def resume(self, assessment_id: str, participant_id: str) -> AttemptResult:
        """Return the participant's persisted, not yet completed attempt."""
        attempt = await self.find_attempt(assessment_id, participant_id)
        if attempt is None:
            raise AttemptNotFound()
        if attempt.is_completed:
            raise AttemptClosed()
        logger.info("Attempt %s resumed with %d saved answers", attempt.id, len(attempt.answers))
        return attempt

    async def _require_item(self, assessment_id: str, item_id: str, item_bank: Optional[ItemBank]) -> None:
        if item_bank is not None and item_bank.assessment_id == assessment_id:
            found = item_id in item_bank
        else:
            found = await self.store.get(Item, {"id": item_id, "exam_id": assessment_id}) is not None
        if not found:
            raise ItemNotInAssessment()

    async def record_answer(
        self, attempt_id: str, item_id: str, label: str, item_bank: Optional[ItemBank] = None
    ) -> AttemptResult:
        """Upsert one answer; last write wins. StoreError propagates so the caller can retry."""
        _check_label(label)
        attempt = await self.get_attempt(attempt_id)
        if attempt.is_completed:
            raise AttemptClosed()
        await self._require_item(attempt.exam_id, item_id, item_bank)
        answers = {**attempt.answers, item_id: label}
        rows = await self.store.update(AttemptResult, {"id": attempt_id, "completed_at": None}, {"answers": answers})
        if not rows:
            raise AttemptClosed()
        logger.debug("Attempt %s: item %s -> %s", attempt_id, item_id, label)
        return rows[0]

    async def complete(
        self,
        attempt_id: str,
        answers: Optional[Mapping[str, str]] = None,
        item_bank: Optional[ItemBank] = None,
        trigger: str = "manual",
    ) -> AttemptResult:
        """
        Score and finalize an attempt.

        ``answers`` (the client's local buffer) is merged over the persisted
        answer map before scoring. The write only applies while completed_at is
        still null, so a second completion returns the stored result instead of
        rewriting it. Store failures surface as SubmissionFailed.
        """
        try:
            attempt = await self.get_attempt(attempt_id)
            if attempt.is_completed:
                logger.info("Attempt %s already completed; returning stored result", attempt_id)
                return attempt
            bank = item_bank if item_bank is not None and item_bank.assessment_id == attempt.exam_id \
                else await self.load_item_bank(attempt.exam_id)
            final_answers: Dict[str, str] = dict(attempt.answers)
            for item_id, label in (answers or {}).items():
                if attempt.answers.get(item_id) == label:
                    continue
                _check_label(label)
                if item_id not in bank:
                    raise ItemNotInAssessment()
                final_answers[item_id] = label
            stale = [item_id for item_id in final_answers if item_id not in bank]
            if stale:
                logger.warning("Attempt %s: %d answered items no longer exist and score nothing", attempt_id, len(stale))
            if bank.total_weight != attempt.total_marks:
                logger.info(
                    "Attempt %s: item weights now sum to %d, scoring against snapshot %d",
                    attempt_id, bank.total_weight, attempt.total_marks,
                )
            result = score(final_answers, bank, attempt.total_marks)
            patch = {
                "completed_at": self.now(),
                "score": result.raw,
                "percentage": result.percentage,
                "answers": final_answers,
            }
            rows = await self.store.update(AttemptResult, {"id": attempt_id, "completed_at": None}, patch)
            if not rows:
                logger.info("Attempt %s was completed concurrently; returning stored result", attempt_id)
                return await self.get_attempt(attempt_id)
        except StoreError as e:
            logger.error("Completing attempt %s failed: %s", attempt_id, e.message)
            raise SubmissionFailed() from e
        completed = rows[0]
        logger.info(
            "Attempt %s completed (%s): score=%s/%s (%.1f%%)",
            attempt_id, trigger, result.raw, attempt.total_marks, result.percentage,
        )
        return completed


# ============= Participant-side driver =============

@dataclass(frozen=True)
class AttemptEvent:
    kind: str  # "state", "tick", "answer", "completed", "error"
    state: AttemptState
    remaining: int
    item_id: Optional[str] = None
    result: Optional[AttemptResult] = None
    error: Optional[ExamHallError] = None


@dataclass(frozen=True)
class AttemptSnapshot:
    state: AttemptState
    remaining: int
    answers: Dict[str, str] = field(default_factory=dict)
    attempt: Optional[AttemptResult] = None
    error: Optional[ExamHallError] = None


Listener = Callable[[AttemptEvent], None]


class AttemptSession:
    """
    Drives one participant's attempt on a single event loop.

    Usage: enter() -> begin() -> choose(...)* -> submit(), or let the clock
    expire. State can be pulled with snapshot() or pushed through subscribe().
    """

    def __init__(
        self,
        engine: AttemptEngine,
        assessment_id: str,
        participant_id: str,
        sleep: Sleep = asyncio.sleep,
    ):
        self.engine = engine
        self.assessment_id = assessment_id
        self.participant_id = participant_id
        self._sleep = sleep
        self.state = AttemptState.NOT_STARTED
        self.assessment: Optional[Assessment] = None
        self.item_bank: Optional[ItemBank] = None
        self.attempt: Optional[AttemptResult] = None
        self.clock: Optional[SessionClock] = None
        self.error: Optional[ExamHallError] = None
        self._answers: Dict[str, str] = {}
        self._listeners: List[Listener] = []
        self._completion: Optional[asyncio.Future] = None
        self._done: Optional[asyncio.Future] = None

    # ---- observation ----

    @property
    def remaining(self) -> int:
        return self.clock.remaining if self.clock else 0

    @property
    def answers(self) -> Dict[str, str]:
        return dict(self._answers)

    def snapshot(self) -> AttemptSnapshot:
        return AttemptSnapshot(
            state=self.state, remaining=self.remaining, answers=self.answers, attempt=self.attempt, error=self.error
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **extra) -> None:
        event = AttemptEvent(kind=kind, state=self.state, remaining=self.remaining, **extra)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Attempt listener failed on %s event", kind)

    def _set_state(self, state: AttemptState) -> None:
        if state is not self.state:
            self.state = state
            self._emit("state")

    # ---- lifecycle ----

    async def enter(self) -> Eligibility:
        """Load the assessment and decide whether this participant may start."""
        self.assessment = await self.engine.get_assessment(self.assessment_id)
        eligibility = await self.engine.check_eligibility(self.assessment_id, self.participant_id)
        if eligibility is Eligibility.ALREADY_TAKEN:
            self._set_state(AttemptState.ALREADY_COMPLETED)
            return eligibility
        self.item_bank = await self.engine.load_item_bank(self.assessment_id)
        return eligibility

    async def begin(self) -> AttemptResult:
        """
        Persist the attempt, then start the countdown.

        Under BLOCK_ON_COMPLETED_ONLY an abandoned in-progress attempt is
        resumed with its saved answers and the time it has left. Any other
        conflict moves the session to ALREADY_COMPLETED and re-raises.
        """
        if self.state is not AttemptState.NOT_STARTED:
            raise NotEligible(f"Cannot start an attempt that is {self.state.value}.")
        if self.assessment is None:
            self.assessment = await self.engine.get_assessment(self.assessment_id)
        if self.item_bank is None:
            self.item_bank = await self.engine.load_item_bank(self.assessment_id)
        try:
            attempt = await self.engine.start(self.assessment_id, self.participant_id)
        except StartConflict:
            attempt = await self._resume_or_block()
        self.attempt = attempt
        self._answers = dict(attempt.answers)
        self._done = asyncio.get_running_loop().create_future()
        self.clock = SessionClock(
            self._initial_seconds(attempt), on_expire=self._expire, on_tick=self._tick, sleep=self._sleep
        )
        self._set_state(AttemptState.IN_PROGRESS)
        self.clock.start()
        return attempt

    async def _resume_or_block(self) -> AttemptResult:
        if self.engine.policy is EligibilityPolicy.BLOCK_ON_COMPLETED_ONLY:
            existing = await self.engine.find_attempt(self.assessment_id, self.participant_id)
            if existing is not None and not existing.is_completed:
                return await self.engine.resume(self.assessment_id, self.participant_id)
        self._set_state(AttemptState.ALREADY_COMPLETED)
        raise StartConflict()

    def _initial_seconds(self, attempt: AttemptResult) -> int:
        now = self.engine.now()
        seconds = self.assessment.duration_minutes * 60
        if attempt.started_at is not None:
            seconds -= max(0, int((now - _aware(attempt.started_at)).total_seconds()))
        if self.assessment.exam_end_at is not None:
            seconds = min(seconds, int((_aware(self.assessment.exam_end_at) - now).total_seconds()))
        return max(0, seconds)

    def _tick(self, remaining: int) -> None:
        self._emit("tick")

    async def choose(self, item_id: str, label: str) -> None:
        """
        Select an answer and save it.

        The local buffer keeps the choice even if the save fails, and the
        buffer is sent again at completion; the StoreError still propagates
        so the caller can prompt for a retry.
        """
        if self.state is AttemptState.COMPLETED or self.state is AttemptState.ALREADY_COMPLETED:
            raise AttemptClosed()
        if self.state is not AttemptState.IN_PROGRESS or self.attempt is None:
            raise NotEligible("Start the exam before answering.")
        if self.clock is not None and self.clock.expired:
            raise AttemptClosed("Time is up. Submit to finish the exam.")
        _check_label(label)
        if item_id not in self.item_bank:
            raise ItemNotInAssessment()
        self._answers[item_id] = label
        self._emit("answer", item_id=item_id)
        await self.engine.record_answer(self.attempt.id, item_id, label, item_bank=self.item_bank)

    async def submit(self) -> AttemptResult:
        """Manual submit. Stops the clock first so it cannot fire afterwards."""
        return await self._finish("manual")

    async def _expire(self) -> None:
        try:
            await self._finish("expired")
        except ExamHallError:
            # already recorded on the session and emitted; submit() retries
            pass
        except Exception:
            logger.exception("Automatic submission of attempt %s failed", self.attempt.id)
            self.error = SubmissionFailed()
            self._emit("error", error=self.error)

    async def _finish(self, trigger: str) -> AttemptResult:
        if self.state is AttemptState.COMPLETED:
            return self.attempt
        if self.state is not AttemptState.IN_PROGRESS:
            raise NotEligible("There is no exam in progress to submit.")
        if self.clock:
            self.clock.stop()
        if self._completion is None:
            self._completion = asyncio.ensure_future(self._complete(trigger))
        completion = self._completion
        try:
            return await asyncio.shield(completion)
        finally:
            if completion.done() and (completion.cancelled() or completion.exception() is not None):
                self._completion = None

    async def _complete(self, trigger: str) -> AttemptResult:
        try:
            result = await self.engine.complete(
                self.attempt.id, answers=self._answers, item_bank=self.item_bank, trigger=trigger
            )
        except ExamHallError as e:
            self.error = e
            self._emit("error", error=e)
            raise
        self.attempt = result
        self.error = None
        self._set_state(AttemptState.COMPLETED)
        self._emit("completed", result=result)
        if self._done is not None and not self._done.done():
            self._done.set_result(result)
        return result

    async def wait_until_completed(self) -> AttemptResult:
        if self.state is AttemptState.COMPLETED:
            return self.attempt
        if self._done is None:
            raise NotEligible("The exam has not been started.")
        return await self._done
