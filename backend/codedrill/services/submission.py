"""
Answer Submission Service

Turns one submitted answer into a verdict, a point score and the
follow-up bookkeeping.

1. Validate the request and parse the payload against the question's format
   (nothing is written if this fails).
2. Grade it with the AnswerEvaluator (the sandbox call happens here,
   outside any database lock).
3. In one transaction: lock the question row, insert the attempt with the
   next attempt_number and update the question's aggregate statistics.
4. After that commit, best-effort side effects, each in its own
   transaction and retried a bounded number of times:
   review schedule, topic proficiency, streak, study time, and the
   matching training-plan item. A side effect that keeps failing is
   logged and dropped; the attempt stands.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from codedrill.config import EngineConfig
from codedrill.exceptions import NotFoundError, ValidationFailed
from codedrill.models.models import Question, QuestionAttempt
from codedrill.schemas.answers import MultipleChoiceAnswer, Submission, parse_submission
from codedrill.schemas.requests import SubmitAnswerRequest, validate_submit_answer
from codedrill.services.answer_evaluator import AnswerEvaluator
from codedrill.services.code_sandbox import CodeSandbox
from codedrill.services.proficiency import ProficiencyTracker, primary_topic_id
from codedrill.services.scoring import calculate_points, derive_quality
from codedrill.services.spaced_repetition import record_review
from codedrill.services.training_plan import DifficultyAdapter, complete_question_in_plan, get_plan

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    attempt_id: str
    attempt_number: int
    is_correct: bool
    correct_answer: Dict[str, Any]
    explanation: str
    points_earned: int
    quality: int
    wrong_answer_explanation: Optional[str] = None
    new_proficiency_level: Optional[float] = None
    failed_side_effects: List[str] = field(default_factory=list)


def wrong_answer_explanation(question: Question, submission: Submission) -> Optional[str]:
    """Why the chosen option is wrong, for multiple-choice questions that carry one."""
    if not isinstance(submission, MultipleChoiceAnswer):
        return None
    explanations = question.wrong_answer_explanations or {}
    return explanations.get(submission.answer)


class SubmissionService:

    def __init__(
        self,
        evaluator: AnswerEvaluator,
        tracker: ProficiencyTracker,
        adapter: DifficultyAdapter,
        max_hint_level: int = 3,
        side_effect_retries: int = 2,
    ):
        self.evaluator = evaluator
        self.tracker = tracker
        self.adapter = adapter
        self.max_hint_level = max_hint_level
        self.side_effect_retries = side_effect_retries

    @classmethod
    def from_config(cls, config: EngineConfig, sandbox: Optional[CodeSandbox] = None) -> "SubmissionService":
        return cls(
            evaluator=AnswerEvaluator.from_config(config, sandbox=sandbox),
            tracker=ProficiencyTracker.from_config(config),
            adapter=DifficultyAdapter.from_config(config),
            max_hint_level=config.max_hint_level,
            side_effect_retries=config.side_effect_retries,
        )

    def submit(
        self,
        db: Session,
        user_id: str,
        question_id: str,
        request: SubmitAnswerRequest,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        """
        Grade and record an answer.

        Args:
            db: Database session
            user_id: Authenticated user
            question_id: Question being answered
            request: Submitted payload and timing
            now: Clock override for tests

        Returns:
            SubmissionResult

        Raises:
            ValidationFailed: bad ranges or a payload that does not fit the question
            NotFoundError: unknown question, or a training plan that is not the user's
        """
        errors = validate_submit_answer(request, max_hint_level=self.max_hint_level)
        if errors:
            raise ValidationFailed(errors)

        now = now or datetime.utcnow()

        question = db.query(Question).filter(Question.id == question_id).first()
        if question is None:
            raise NotFoundError("question", question_id)
        if request.training_plan_id:
            get_plan(db, request.training_plan_id, user_id)

        submission = parse_submission(question.question_format, request.user_answer)
        is_correct = self.evaluator.evaluate(question, submission)

        quality = derive_quality(
            is_correct, request.time_taken_seconds, question.estimated_time_seconds, request.hints_used
        )
        points = calculate_points(
            is_correct,
            question.difficulty_score,
            request.time_taken_seconds,
            question.estimated_time_seconds,
            request.hints_used,
        )

        attempt = self._record_attempt(db, user_id, question_id, request, is_correct, points, now)

        result = SubmissionResult(
            attempt_id=attempt.id,
            attempt_number=attempt.attempt_number,
            is_correct=is_correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation or "",
            points_earned=points,
            quality=quality,
            wrong_answer_explanation=None if is_correct else wrong_answer_explanation(question, submission),
        )

        self._apply_side_effects(db, user_id, question, request, is_correct, quality, now, result)
        return result

    def _record_attempt(
        self,
        db: Session,
        user_id: str,
        question_id: str,
        request: SubmitAnswerRequest,
        is_correct: bool,
        points: int,
        now: datetime,
    ) -> QuestionAttempt:
        """Insert the attempt and update question stats atomically."""
        try:
            question = db.query(Question).filter(Question.id == question_id).with_for_update().one()

            last_number = db.query(func.max(QuestionAttempt.attempt_number)).filter(
                QuestionAttempt.user_id == user_id,
                QuestionAttempt.question_id == question_id,
            ).scalar() or 0

            attempt = QuestionAttempt(
                user_id=user_id,
                question_id=question_id,
                user_answer=request.user_answer,
                is_correct=is_correct,
                time_taken_seconds=request.time_taken_seconds,
                hints_used=request.hints_used,
                confidence_level=request.confidence_level,
                attempt_number=last_number + 1,
                points_earned=points,
                training_plan_id=request.training_plan_id,
                attempted_at=now,
            )
            db.add(attempt)

            previous_total = question.total_attempts or 0
            question.total_attempts = previous_total + 1
            if is_correct:
                question.correct_attempts = (question.correct_attempts or 0) + 1
            previous_avg = question.average_time_seconds or 0.0
            question.average_time_seconds = (
                previous_avg * previous_total + request.time_taken_seconds
            ) / question.total_attempts

            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(attempt)
        return attempt

    def _run_side_effect(self, db: Session, name: str, action: Callable[[], Any], **context) -> Any:
        """Run one post-commit update with bounded retries; never raises."""
        attempts = self.side_effect_retries + 1
        for attempt_no in range(1, attempts + 1):
            try:
                value = action()
                db.commit()
                return value
            except Exception as e:
                db.rollback()
                logger.warning(
                    "Side effect %s failed (try %d/%d) %s: %s",
                    name, attempt_no, attempts, context, e,
                )
        raise _SideEffectGaveUp(name)

    def _apply_side_effects(
        self,
        db: Session,
        user_id: str,
        question: Question,
        request: SubmitAnswerRequest,
        is_correct: bool,
        quality: int,
        now: datetime,
        result: SubmissionResult,
    ) -> None:
        question_id = question.id
        topic_id = self._safe_topic(db, question)

        steps = [
            ("review_schedule", lambda: record_review(db, user_id, question_id, quality, now=now)),
            ("streak", lambda: self.tracker.update_streak(db, user_id, now=now)),
            ("study_time", lambda: self.tracker.add_study_time(db, user_id, request.time_taken_seconds)),
        ]
        if topic_id is not None:
            steps.insert(1, (
                "proficiency",
                lambda: self.tracker.record_attempt(db, user_id, topic_id, is_correct, now=now),
            ))
        if request.training_plan_id:
            plan_id = request.training_plan_id
            steps.append((
                "plan_item",
                lambda: complete_question_in_plan(db, plan_id, user_id, question_id, adapter=self.adapter, now=now),
            ))

        for name, action in steps:
            try:
                value = self._run_side_effect(
                    db, name, action, user_id=user_id, question_id=question_id, topic_id=topic_id,
                )
            except _SideEffectGaveUp:
                result.failed_side_effects.append(name)
                continue
            if name == "proficiency" and value is not None:
                result.new_proficiency_level = value.proficiency_level

        if result.failed_side_effects:
            logger.warning(
                "Attempt %s recorded but side effects failed: %s",
                result.attempt_id, ", ".join(result.failed_side_effects),
            )

    def _safe_topic(self, db: Session, question: Question) -> Optional[str]:
        try:
            return primary_topic_id(db, question)
        except Exception as e:
            db.rollback()
            logger.warning("Could not resolve topic for question %s: %s", question.id, e)
            return None


class _SideEffectGaveUp(Exception):
    def __init__(self, name: str):
        super().__init__(f"side effect {name} gave up")
        self.name = name
