"""
Training Plan Service

Multi-day practice plans: a plan is a fixed sequence of question
assignments spread over ``duration_days`` with ``questions_per_day``
items per day.

Lifecycle:
- create_training_plan builds the plan and all of its items in one transaction
- complete_item marks an item done, recomputes progress and, for adaptive
  plans, lets the DifficultyAdapter re-point the remaining items
- get_next_item returns the first incomplete item, or completes the plan
  when none is left
- pause/resume toggle between active and paused; delete removes the plan
  together with its items
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codedrill.config import EngineConfig
from codedrill.exceptions import NotFoundError, PlanStateError
from codedrill.models.models import (
    Problem,
    ProblemTopic,
    Question,
    QuestionAttempt,
    TrainingPlan,
    TrainingPlanItem,
)
from codedrill.schemas.requests import CreatePlanRequest

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_COMPLETED = "completed"


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


# =============================================================================
# GENERATION
# =============================================================================

def candidate_questions(
    db: Session,
    difficulty_min: float,
    difficulty_max: float,
    limit: int,
    target_topics: Optional[List[str]] = None,
    target_patterns: Optional[List[str]] = None,
) -> List[Question]:
    """
    Questions inside the difficulty band in deterministic pool order
    (oldest first, id as tie-breaker).
    """
    query = db.query(Question).filter(
        Question.difficulty_score >= difficulty_min,
        Question.difficulty_score <= difficulty_max,
    )

    if target_topics:
        topic_problems = db.query(ProblemTopic.problem_id).filter(ProblemTopic.topic_id.in_(target_topics))
        query = query.filter(Question.problem_id.in_(topic_problems))

    if target_patterns:
        pattern_problems = db.query(Problem.id).filter(Problem.primary_pattern.in_(target_patterns))
        query = query.filter(Question.problem_id.in_(pattern_problems))

    return query.order_by(Question.created_at.asc(), Question.id.asc()).limit(limit).all()


def generate_plan_items(db: Session, plan: TrainingPlan, questions: List[Question]) -> List[TrainingPlanItem]:
    """
    Spread questions across the plan's days in pool order.

    Each day gets up to questions_per_day items; when the pool runs short
    later days receive fewer (or none).
    """
    items = []
    pool = list(questions)
    sequence_number = 1

    for day in range(1, plan.duration_days + 1):
        scheduled_for = plan.start_date + timedelta(days=day - 1)
        for _ in range(plan.questions_per_day):
            if not pool:
                break
            question = pool.pop(0)
            item = TrainingPlanItem(
                plan_id=plan.id,
                question_id=question.id,
                sequence_number=sequence_number,
                day_number=day,
                scheduled_for=scheduled_for,
                item_type="question",
                is_completed=False,
            )
            db.add(item)
            items.append(item)
            sequence_number += 1

    return items


def create_training_plan(
    db: Session,
    user_id: str,
    request: CreatePlanRequest,
    now: Optional[datetime] = None,
) -> TrainingPlan:
    """
    Create a plan and its items in a single transaction.

    Args:
        db: Database session
        user_id: Owner of the plan
        request: Already validated creation request
        now: Clock override for tests

    Returns:
        The persisted TrainingPlan
    """
    now = now or datetime.utcnow()
    requested_start = request.start_date
    if requested_start is not None and requested_start.tzinfo is not None:
        requested_start = requested_start.astimezone(timezone.utc).replace(tzinfo=None)
    start_date = _start_of_day(requested_start or now)

    plan = TrainingPlan(
        user_id=user_id,
        name=request.name,
        description=request.description,
        plan_type=request.plan_type,
        target_topics=request.target_topics or None,
        target_patterns=request.target_patterns or None,
        difficulty_min=request.difficulty_min,
        difficulty_max=request.difficulty_max,
        duration_days=request.duration_days,
        questions_per_day=request.questions_per_day,
        adaptive_difficulty=request.adaptive_difficulty,
        progress_percentage=0.0,
        status=STATUS_ACTIVE,
        start_date=start_date,
    )

    try:
        db.add(plan)
        db.flush()

        questions = candidate_questions(
            db,
            request.difficulty_min,
            request.difficulty_max,
            limit=request.duration_days * request.questions_per_day,
            target_topics=request.target_topics,
            target_patterns=request.target_patterns,
        )
        items = generate_plan_items(db, plan, questions)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(plan)
    logger.info(
        "Created training plan %s for user %s with %d items (target %d)",
        plan.id, user_id, len(items), request.duration_days * request.questions_per_day,
    )
    return plan


# =============================================================================
# QUERIES
# =============================================================================

def get_plan(db: Session, plan_id: str, user_id: str) -> TrainingPlan:
    """A plan owned by user_id; anyone else's plan is reported as missing."""
    plan = db.query(TrainingPlan).filter(
        TrainingPlan.id == plan_id,
        TrainingPlan.user_id == user_id,
    ).first()
    if plan is None:
        raise NotFoundError("training plan", plan_id)
    return plan


def list_plans(db: Session, user_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[TrainingPlan], int]:
    query = db.query(TrainingPlan).filter(TrainingPlan.user_id == user_id)
    total = query.count()
    plans = query.order_by(TrainingPlan.created_at.desc()).offset(offset).limit(limit).all()
    return plans, total


def get_plan_items(db: Session, plan_id: str, user_id: str) -> List[TrainingPlanItem]:
    get_plan(db, plan_id, user_id)
    return db.query(TrainingPlanItem).filter(
        TrainingPlanItem.plan_id == plan_id
    ).order_by(TrainingPlanItem.sequence_number.asc()).all()


def get_todays_items(
    db: Session,
    plan_id: str,
    user_id: str,
    now: Optional[datetime] = None,
) -> List[TrainingPlanItem]:
    """Incomplete items scheduled for the current calendar day."""
    get_plan(db, plan_id, user_id)
    start = _start_of_day(now or datetime.utcnow())
    end = start + timedelta(days=1)

    return db.query(TrainingPlanItem).filter(
        TrainingPlanItem.plan_id == plan_id,
        TrainingPlanItem.scheduled_for >= start,
        TrainingPlanItem.scheduled_for < end,
        TrainingPlanItem.is_completed == False,  # noqa: E712
    ).order_by(TrainingPlanItem.sequence_number.asc()).all()


def update_plan_progress(db: Session, plan: TrainingPlan) -> float:
    """Recompute progress_percentage from item counts."""
    total = db.query(func.count(TrainingPlanItem.id)).filter(
        TrainingPlanItem.plan_id == plan.id
    ).scalar() or 0
    completed = db.query(func.count(TrainingPlanItem.id)).filter(
        TrainingPlanItem.plan_id == plan.id,
        TrainingPlanItem.is_completed == True,  # noqa: E712
    ).scalar() or 0

    if total:
        plan.progress_percentage = completed / total * 100
    return plan.progress_percentage


# =============================================================================
# LIFECYCLE
# =============================================================================

def get_next_item(db: Session, plan_id: str, user_id: str) -> Optional[TrainingPlanItem]:
    """
    First incomplete item in sequence order.

    Returns None after marking the plan completed (progress 100) when no
    incomplete item remains.

    Raises:
        NotFoundError: unknown plan or not the user's
        PlanStateError: plan is paused or already completed
    """
    plan = get_plan(db, plan_id, user_id)
    if plan.status != STATUS_ACTIVE:
        raise PlanStateError(plan.id, plan.status, f"training plan {plan.id} is not active")

    item = db.query(TrainingPlanItem).filter(
        TrainingPlanItem.plan_id == plan.id,
        TrainingPlanItem.is_completed == False,  # noqa: E712
    ).order_by(TrainingPlanItem.sequence_number.asc()).first()

    if item is None:
        plan.status = STATUS_COMPLETED
        plan.progress_percentage = 100.0
        db.commit()
        logger.info("Training plan %s completed", plan.id)
        return None

    return item


def complete_item(
    db: Session,
    plan_id: str,
    user_id: str,
    item_id: str,
    adapter: Optional["DifficultyAdapter"] = None,
    now: Optional[datetime] = None,
) -> TrainingPlanItem:
    """
    Mark an item completed, recompute progress and adapt if the plan allows it.

    Completing an already completed item is a no-op apart from the progress
    recomputation.
    """
    now = now or datetime.utcnow()
    plan = get_plan(db, plan_id, user_id)

    item = db.query(TrainingPlanItem).filter(
        TrainingPlanItem.id == item_id,
        TrainingPlanItem.plan_id == plan.id,
    ).first()
    if item is None:
        raise NotFoundError("plan item", item_id)

    if not item.is_completed:
        item.is_completed = True
        item.completed_at = now
        db.flush()

    update_plan_progress(db, plan)
    db.commit()

    if plan.adaptive_difficulty and adapter is not None:
        adapter.adapt(db, plan)

    return item


def complete_question_in_plan(
    db: Session,
    plan_id: str,
    user_id: str,
    question_id: str,
    adapter: Optional["DifficultyAdapter"] = None,
    now: Optional[datetime] = None,
) -> Optional[TrainingPlanItem]:
    """Complete the first incomplete item pointing at question_id, if there is one."""
    get_plan(db, plan_id, user_id)
    item = db.query(TrainingPlanItem).filter(
        TrainingPlanItem.plan_id == plan_id,
        TrainingPlanItem.question_id == question_id,
        TrainingPlanItem.is_completed == False,  # noqa: E712
    ).order_by(TrainingPlanItem.sequence_number.asc()).first()

    if item is None:
        return None
    return complete_item(db, plan_id, user_id, item.id, adapter=adapter, now=now)


def pause_plan(db: Session, plan_id: str, user_id: str) -> TrainingPlan:
    plan = get_plan(db, plan_id, user_id)
    if plan.status != STATUS_ACTIVE:
        raise PlanStateError(plan.id, plan.status, "only active plans can be paused")
    plan.status = STATUS_PAUSED
    db.commit()
    db.refresh(plan)
    return plan


def resume_plan(db: Session, plan_id: str, user_id: str) -> TrainingPlan:
    plan = get_plan(db, plan_id, user_id)
    if plan.status != STATUS_PAUSED:
        raise PlanStateError(plan.id, plan.status, "only paused plans can be resumed")
    plan.status = STATUS_ACTIVE
    db.commit()
    db.refresh(plan)
    return plan


def delete_plan(db: Session, plan_id: str, user_id: str) -> None:
    """
    Delete a plan and its items together.

    Attempts made under the plan are kept; only their plan reference is cleared.
    """
    plan = get_plan(db, plan_id, user_id)
    try:
        db.query(QuestionAttempt).filter(
            QuestionAttempt.training_plan_id == plan.id
        ).update({QuestionAttempt.training_plan_id: None}, synchronize_session=False)
        db.delete(plan)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted training plan %s for user %s", plan_id, user_id)


# =============================================================================
# ADAPTATION
# =============================================================================

@dataclass
class AdaptationResult:
    accuracy: float
    average_difficulty: float
    target_min: float
    target_max: float
    items_considered: int
    items_replaced: int


class DifficultyAdapter:
    """
    Re-targets the incomplete items of an adaptive plan from recent accuracy.

    accuracy > high threshold: band [avg+5, min(100, avg+20)]
    accuracy < low threshold:  band [max(0, avg-20), max(0, avg-5)]
    otherwise no change.

    Each item is updated and committed on its own; a failure on one item is
    logged and the rest still proceed. Item identity and slot are preserved.
    """

    def __init__(
        self,
        window: int = 20,
        min_attempts: int = 5,
        high_accuracy: float = 0.85,
        low_accuracy: float = 0.40,
    ):
        self.window = window
        self.min_attempts = min_attempts
        self.high_accuracy = high_accuracy
        self.low_accuracy = low_accuracy

    @classmethod
    def from_config(cls, config: EngineConfig) -> "DifficultyAdapter":
        return cls(
            window=config.adaptation_window,
            min_attempts=config.adaptation_min_attempts,
            high_accuracy=config.high_accuracy_threshold,
            low_accuracy=config.low_accuracy_threshold,
        )

    def recent_accuracy(self, db: Session, user_id: str) -> Optional[float]:
        """Accuracy over the trailing window, or None with too few attempts."""
        recent = db.query(QuestionAttempt.is_correct).filter(
            QuestionAttempt.user_id == user_id
        ).order_by(QuestionAttempt.attempted_at.desc()).limit(self.window).all()

        if len(recent) < self.min_attempts:
            return None
        return sum(1 for row in recent if row.is_correct) / len(recent)

    def target_band(self, accuracy: float, average_difficulty: float) -> Optional[Tuple[float, float]]:
        if accuracy > self.high_accuracy:
            return average_difficulty + 5, min(100.0, average_difficulty + 20)
        if accuracy < self.low_accuracy:
            return max(0.0, average_difficulty - 20), max(0.0, average_difficulty - 5)
        return None

    def adapt(self, db: Session, plan: TrainingPlan) -> Optional[AdaptationResult]:
        """
        Adapt the plan's remaining items.

        Returns:
            AdaptationResult when a new band was applied, else None
        """
        if not plan.adaptive_difficulty:
            return None

        accuracy = self.recent_accuracy(db, plan.user_id)
        if accuracy is None:
            return None

        average = db.query(func.avg(Question.difficulty_score)).join(
            TrainingPlanItem, TrainingPlanItem.question_id == Question.id
        ).filter(
            TrainingPlanItem.plan_id == plan.id,
            TrainingPlanItem.is_completed == False,  # noqa: E712
        ).scalar()
        average = float(average) if average is not None else 50.0

        band = self.target_band(accuracy, average)
        if band is None:
            return None
        target_min, target_max = band

        incomplete = db.query(TrainingPlanItem).filter(
            TrainingPlanItem.plan_id == plan.id,
            TrainingPlanItem.is_completed == False,  # noqa: E712
        ).order_by(TrainingPlanItem.sequence_number.asc()).all()

        in_plan = db.query(TrainingPlanItem.question_id).filter(TrainingPlanItem.plan_id == plan.id)
        replacements = db.query(Question.id).filter(
            Question.difficulty_score >= target_min,
            Question.difficulty_score <= target_max,
            Question.id.notin_(in_plan),
        ).order_by(func.random()).limit(len(incomplete)).all()

        replaced = 0
        for item, (question_id,) in zip(incomplete, replacements):
            try:
                item.question_id = question_id
                db.commit()
                replaced += 1
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Failed to adapt plan item %s of plan %s: %s", item.id, plan.id, e)

        logger.info(
            "Adapted plan %s: accuracy=%.2f avg=%.1f band=[%.1f, %.1f] replaced %d/%d items",
            plan.id, accuracy, average, target_min, target_max, replaced, len(incomplete),
        )
        return AdaptationResult(
            accuracy=accuracy,
            average_difficulty=average,
            target_min=target_min,
            target_max=target_max,
            items_considered=len(incomplete),
            items_replaced=replaced,
        )
