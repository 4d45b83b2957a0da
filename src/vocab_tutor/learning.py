"""Spaced repetition state machine for individual words."""
from dataclasses import replace
from datetime import date, datetime, time, timedelta

from vocab_tutor.models import UserWordState

REVIEW_INTERVALS_DAYS = (1, 2, 4, 7, 15, 30, 60)
MAX_STAGE = len(REVIEW_INTERVALS_DAYS) - 1

CORRECT_STRENGTH_GAIN = 0.15
INCORRECT_STRENGTH_LOSS = 0.25
WEAK_STRENGTH_THRESHOLD = 0.6
FRESH_STRENGTH = 0.2


def _clamp(n: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(n, low), high)


def as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    return datetime.fromisoformat(value)


def to_date_key(value) -> str:
    return as_datetime(value).date().isoformat()


def _parse_like(value: str, reference: datetime) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and reference.tzinfo is not None:
        return parsed.replace(tzinfo=reference.tzinfo)
    if parsed.tzinfo is not None and reference.tzinfo is None:
        return parsed.replace(tzinfo=None)
    return parsed


def update_word_state_after_answer(
    state: UserWordState,
    was_correct: bool,
    today,
) -> UserWordState:
    """Return the state that results from answering the word.

    Args:
        state: Current state; it is not modified.
        was_correct: Whether the learner answered correctly.
        today: Moment of the answer (datetime, date or ISO string).

    Returns:
        A new UserWordState with updated stage, strength, status and schedule.
    """
    today = as_datetime(today)
    nxt = replace(state)

    if was_correct:
        nxt.total_correct += 1
        nxt.stage = min(nxt.stage + 1, MAX_STAGE)
        nxt.strength = _clamp(nxt.strength + CORRECT_STRENGTH_GAIN)
        if nxt.status == "new":
            nxt.status = "learning"
        if nxt.status == "learning" and nxt.stage >= 2:
            nxt.status = "review"
        if nxt.status == "review" and nxt.stage >= 5 and nxt.strength > 0.85:
            nxt.status = "mastered"
        interval = REVIEW_INTERVALS_DAYS[nxt.stage]
    else:
        nxt.total_incorrect += 1
        nxt.stage = max(nxt.stage - 1, 0)
        nxt.strength = _clamp(nxt.strength - INCORRECT_STRENGTH_LOSS)
        # Status never drops back below learning.
        if nxt.status == "new":
            nxt.status = "learning"
        interval = 1

    nxt.next_review_at = (today + timedelta(days=interval)).isoformat()
    nxt.last_seen_at = today.isoformat()
    return nxt


def is_weak_word(state: UserWordState, today) -> bool:
    """A seen word is weak when it is due for review or its strength is low."""
    if state.status == "new":
        return False
    start_of_day = as_datetime(today).replace(hour=0, minute=0, second=0, microsecond=0)
    due = False
    if state.next_review_at:
        due = _parse_like(state.next_review_at, start_of_day) <= start_of_day
    return due or state.strength < WEAK_STRENGTH_THRESHOLD


def _last_seen_key(state: UserWordState) -> float:
    if not state.last_seen_at:
        return float("-inf")
    seen = datetime.fromisoformat(state.last_seen_at)
    if seen.tzinfo is not None:
        return seen.timestamp()
    return (seen - datetime(1970, 1, 1)).total_seconds()


def sort_weak_states(states) -> list[UserWordState]:
    """Weakest first; among equals, the one seen longest ago first."""
    return sorted(states, key=lambda s: (s.strength, _last_seen_key(s)))


def make_fresh_word_state(user_id: str, word_id: str, today) -> UserWordState:
    return UserWordState(
        user_id=user_id,
        word_id=word_id,
        status="new",
        stage=0,
        strength=FRESH_STRENGTH,
        last_seen_at=None,
        next_review_at=as_datetime(today).isoformat(),
        total_correct=0,
        total_incorrect=0,
    )
