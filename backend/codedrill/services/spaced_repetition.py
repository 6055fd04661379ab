"""
Spaced Repetition Service

Implements the SM-2 algorithm for per (user, question) review scheduling.

SM-2 Algorithm:
- Quality rating 0-5 derived from correctness, speed and hint usage
- Easiness factor starts at 2.5 and never drops below 1.3
- Intervals grow exponentially: 1 → 6 → interval * EF rounded half up
- Quality below 3 resets repetitions to 0 and the interval to 1 day

Reference: https://www.supermemo.com/en/archives1990-2015/english/ol/sm2
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codedrill.exceptions import ValidationFailed
from codedrill.models.models import ReviewState
from codedrill.schemas.requests import validate_quality

logger = logging.getLogger(__name__)


# SM-2 Constants
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3


@dataclass(frozen=True)
class ReviewSnapshot:
    """The three SM-2 state variables, detached from persistence."""
    easiness_factor: float
    interval_days: int
    repetitions: int

    @classmethod
    def initial(cls) -> "ReviewSnapshot":
        """State of a key that has never been reviewed."""
        return cls(easiness_factor=DEFAULT_EASE_FACTOR, interval_days=1, repetitions=0)

    @classmethod
    def from_state(cls, state: ReviewState) -> "ReviewSnapshot":
        return cls(
            easiness_factor=state.easiness_factor,
            interval_days=state.interval_days,
            repetitions=state.repetitions,
        )


def sm2_step(current: ReviewSnapshot, quality: int) -> ReviewSnapshot:
    """
    Apply one SM-2 review to a snapshot.

    Args:
        current: State before the review
        quality: Quality rating 0-5

    Returns:
        State after the review

    Raises:
        ValidationFailed: quality outside 0-5
    """
    errors = validate_quality(quality)
    if errors:
        raise ValidationFailed(errors)

    if quality < PASSING_QUALITY:
        # Failed - back to the start
        repetitions = 0
        interval = 1
    else:
        if current.repetitions == 0:
            interval = 1
        elif current.repetitions == 1:
            interval = 6
        else:
            # Halves round up: 12.5 days is 13
            interval = math.floor(current.interval_days * current.easiness_factor + 0.5)
        repetitions = current.repetitions + 1

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    new_ef = current.easiness_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    new_ef = max(MIN_EASE_FACTOR, new_ef)

    return ReviewSnapshot(easiness_factor=new_ef, interval_days=max(1, interval), repetitions=repetitions)


def _locked_state(db: Session, user_id: str, question_id: str) -> Optional[ReviewState]:
    return db.query(ReviewState).filter(
        ReviewState.user_id == user_id,
        ReviewState.question_id == question_id,
    ).with_for_update().first()


def _get_or_create_locked(db: Session, user_id: str, question_id: str, now: datetime) -> Tuple[ReviewState, bool]:
    """
    Return the row for (user, question) under a row lock, creating it if needed.

    A concurrent creator that wins the unique constraint makes our savepoint
    roll back; we then lock and use its row instead.
    """
    state = _locked_state(db, user_id, question_id)
    if state is not None:
        return state, False

    initial = ReviewSnapshot.initial()
    try:
        with db.begin_nested():
            state = ReviewState(
                user_id=user_id,
                question_id=question_id,
                easiness_factor=initial.easiness_factor,
                interval_days=initial.interval_days,
                repetitions=initial.repetitions,
                next_review_at=now,
            )
            db.add(state)
        return state, True
    except IntegrityError:
        logger.info("Review state for user %s question %s created concurrently", user_id, question_id)
        state = _locked_state(db, user_id, question_id)
        return state, False


def record_review(
    db: Session,
    user_id: str,
    question_id: str,
    quality: int,
    now: Optional[datetime] = None,
) -> ReviewState:
    """
    Apply a graded review to the (user, question) schedule.

    Validation happens before anything is read or written. The caller owns
    the transaction and commits.

    Returns:
        The updated ReviewState
    """
    errors = validate_quality(quality)
    if errors:
        raise ValidationFailed(errors)

    now = now or datetime.utcnow()
    state, created = _get_or_create_locked(db, user_id, question_id, now)

    current = ReviewSnapshot.initial() if created else ReviewSnapshot.from_state(state)
    updated = sm2_step(current, quality)

    state.easiness_factor = updated.easiness_factor
    state.interval_days = updated.interval_days
    state.repetitions = updated.repetitions
    state.quality_rating = quality
    state.last_review_at = now
    state.next_review_at = now + timedelta(days=updated.interval_days)
    db.flush()

    return state


def get_due_reviews(
    db: Session,
    user_id: str,
    limit: int = 20,
    now: Optional[datetime] = None,
) -> List[ReviewState]:
    """Reviews with next_review_at <= now, soonest first."""
    now = now or datetime.utcnow()
    return db.query(ReviewState).filter(
        ReviewState.user_id == user_id,
        ReviewState.next_review_at <= now,
    ).order_by(ReviewState.next_review_at.asc()).limit(limit).all()


def get_review_stats(db: Session, user_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Get review statistics for a user.

    Returns:
        Dict with total tracked reviews, how many are due now, and how many
        are mature (interval of three weeks or more)
    """
    now = now or datetime.utcnow()
    base = db.query(func.count(ReviewState.id)).filter(ReviewState.user_id == user_id)

    total = base.scalar() or 0
    due = base.filter(ReviewState.next_review_at <= now).scalar() or 0
    mature = base.filter(ReviewState.interval_days >= 21).scalar() or 0

    return {"total": total, "due": due, "mature": mature}
