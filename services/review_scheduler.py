"""
Spaced-repetition scheduler for vocabulary reviews (SM-2 variant).

The functions here are pure: they read the scheduling fields of an item and
return new values. Persisting them is the caller's job.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from core.clock import ensure_aware, utcnow
from core.exceptions import ReviewValidationError

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
INCORRECT_EASE_PENALTY = 0.2
MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class ReviewSchedule:
    ease_factor: float
    interval: int
    next_review_date: datetime


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate_difficulty(correct: bool, difficulty_rating: Optional[int]) -> Optional[int]:
    """Return the usable rating, or raise ReviewValidationError."""
    if not correct:
        return None
    if difficulty_rating is None:
        raise ReviewValidationError(
            "A difficulty rating is required for a correct answer",
            errors=[{"field": "difficulty", "message": "required when correct is true"}]
        )
    if isinstance(difficulty_rating, bool) or not isinstance(difficulty_rating, int):
        raise ReviewValidationError(
            "Difficulty rating must be an integer",
            errors=[{"field": "difficulty", "message": "must be an integer between 1 and 5"}]
        )
    if not MIN_RATING <= difficulty_rating <= MAX_RATING:
        raise ReviewValidationError(
            f"Difficulty rating must be between {MIN_RATING} and {MAX_RATING}",
            errors=[{"field": "difficulty", "message": f"got {difficulty_rating}"}]
        )
    return difficulty_rating


def schedule_next_review(
    item: Any,
    correct: bool,
    difficulty_rating: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ReviewSchedule:
    """
    Compute the next ease factor, interval and due date for ``item``.

    Args:
        item: Anything exposing ``ease_factor``, ``interval`` and ``review_count``
        correct: Whether the user recalled the word
        difficulty_rating: Self-rated quality, 1 (very hard) to 5 (very easy);
            required when ``correct`` is true and ignored otherwise
        now: Review time, defaults to the current UTC time

    Returns:
        ReviewSchedule: the new scheduling values
    """
    rating = validate_difficulty(correct, difficulty_rating)
    now = ensure_aware(now) if now is not None else utcnow()

    ease_factor = item.ease_factor if item.ease_factor is not None else DEFAULT_EASE_FACTOR
    interval = item.interval or 1
    review_count = item.review_count or 0

    if correct:
        penalty = 5 - rating
        ease_factor = max(MIN_EASE_FACTOR, ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02)))
        if review_count == 0:
            interval = 1
        elif review_count == 1:
            interval = 6
        else:
            interval = _round_half_up(interval * ease_factor)
    else:
        interval = 1
        ease_factor = max(MIN_EASE_FACTOR, ease_factor - INCORRECT_EASE_PENALTY)

    return ReviewSchedule(
        ease_factor=ease_factor,
        interval=interval,
        next_review_date=now + timedelta(days=interval),
    )


def apply_review(
    item: Any,
    correct: bool,
    difficulty_rating: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return every column a review changes, ready for an UPDATE."""
    now = ensure_aware(now) if now is not None else utcnow()
    schedule = schedule_next_review(item, correct, difficulty_rating, now)

    updates = {
        "ease_factor": schedule.ease_factor,
        "interval": schedule.interval,
        "next_review_date": schedule.next_review_date,
        "review_count": (item.review_count or 0) + 1,
        "last_reviewed_at": now,
    }
    if correct:
        updates["correct_count"] = (item.correct_count or 0) + 1
    else:
        updates["incorrect_count"] = (item.incorrect_count or 0) + 1
    return updates


def is_due(item: Any, now: Optional[datetime] = None) -> bool:
    now = ensure_aware(now) if now is not None else utcnow()
    return ensure_aware(item.next_review_date) <= now
