"""
Proficiency Tracker.

Per (user, topic) mastery records plus the user's daily streak and total
study time. Mastery is the plain percentage of correct attempts; the
topic-level review date is a coarse heuristic independent of SM-2.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codedrill.config import EngineConfig
from codedrill.exceptions import NotFoundError
from codedrill.models.models import ProblemTopic, Question, QuestionAttempt, Topic, User, UserSkill

logger = logging.getLogger(__name__)

STRONG_TOPIC_THRESHOLD = 70.0
WEAK_TOPIC_THRESHOLD = 50.0


def next_topic_review_date(proficiency: float, was_correct: bool, now: datetime) -> datetime:
    """
    When a topic should come up again.

    incorrect → 1 day; <50 → 2; <70 → 5; <85 → 10; otherwise 20.
    """
    if not was_correct:
        days = 1
    elif proficiency < 50:
        days = 2
    elif proficiency < 70:
        days = 5
    elif proficiency < 85:
        days = 10
    else:
        days = 20
    return now + timedelta(days=days)


def primary_topic_id(db: Session, question: Question) -> Optional[str]:
    """The topic a question's attempts count toward, or None if its problem has none."""
    if not question.problem_id:
        return None
    link = db.query(ProblemTopic).filter(
        ProblemTopic.problem_id == question.problem_id
    ).order_by(
        ProblemTopic.is_primary.desc(),
        ProblemTopic.relevance_score.desc(),
        ProblemTopic.topic_id,
    ).first()
    return link.topic_id if link else None


class ProficiencyTracker:
    """
    Service for topic mastery and engagement bookkeeping.

    Writes flush but never commit; the caller owns the transaction.
    """

    def __init__(self, needs_review_threshold: float = 70.0):
        self.needs_review_threshold = needs_review_threshold

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ProficiencyTracker":
        return cls(needs_review_threshold=config.needs_review_threshold)

    # -------------------------------------------------------------------------
    # Skill records
    # -------------------------------------------------------------------------

    def _locked_skill(self, db: Session, user_id: str, topic_id: str) -> Optional[UserSkill]:
        return db.query(UserSkill).filter(
            UserSkill.user_id == user_id,
            UserSkill.topic_id == topic_id,
        ).with_for_update().first()

    def _get_or_create_locked(self, db: Session, user_id: str, topic_id: str) -> Tuple[UserSkill, bool]:
        skill = self._locked_skill(db, user_id, topic_id)
        if skill is not None:
            return skill, False
        try:
            with db.begin_nested():
                skill = UserSkill(
                    user_id=user_id,
                    topic_id=topic_id,
                    proficiency_level=0.0,
                    questions_attempted=0,
                    questions_correct=0,
                )
                db.add(skill)
            return skill, True
        except IntegrityError:
            logger.info("Skill for user %s topic %s created concurrently", user_id, topic_id)
            return self._locked_skill(db, user_id, topic_id), False

    def record_attempt(
        self,
        db: Session,
        user_id: str,
        topic_id: str,
        is_correct: bool,
        now: Optional[datetime] = None,
    ) -> UserSkill:
        """
        Fold one graded attempt into the user's skill for a topic.

        Args:
            db: Database session
            user_id: User ID
            topic_id: Topic the question belongs to
            is_correct: Whether the attempt was correct
            now: Clock override for tests

        Returns:
            The updated UserSkill
        """
        now = now or datetime.utcnow()
        skill, _ = self._get_or_create_locked(db, user_id, topic_id)

        old_proficiency = skill.proficiency_level or 0.0
        skill.questions_attempted = (skill.questions_attempted or 0) + 1
        if is_correct:
            skill.questions_correct = (skill.questions_correct or 0) + 1

        proficiency = skill.questions_correct / skill.questions_attempted * 100
        skill.proficiency_level = min(100.0, max(0.0, proficiency))

        if old_proficiency > 0:
            skill.improvement_rate = (skill.proficiency_level - old_proficiency) / old_proficiency * 100

        skill.needs_review = skill.proficiency_level < self.needs_review_threshold
        skill.last_practiced_at = now
        skill.next_review_at = next_topic_review_date(skill.proficiency_level, is_correct, now)
        db.flush()

        return skill

    def get_skills(self, db: Session, user_id: str) -> List[UserSkill]:
        return db.query(UserSkill).filter(
            UserSkill.user_id == user_id
        ).order_by(UserSkill.proficiency_level.desc()).all()

    def get_skill(self, db: Session, user_id: str, topic_id: str) -> UserSkill:
        skill = db.query(UserSkill).filter(
            UserSkill.user_id == user_id,
            UserSkill.topic_id == topic_id,
        ).first()
        if skill is None:
            raise NotFoundError("skill for topic", topic_id)
        return skill

    def get_review_queue(self, db: Session, user_id: str, now: Optional[datetime] = None) -> List[UserSkill]:
        """Topics flagged for review whose review date has passed."""
        now = now or datetime.utcnow()
        return db.query(UserSkill).filter(
            UserSkill.user_id == user_id,
            UserSkill.needs_review == True,  # noqa: E712
            UserSkill.next_review_at <= now,
        ).order_by(UserSkill.next_review_at.asc()).all()

    def get_strong_topics(self, db: Session, user_id: str, limit: int = 5) -> List[Topic]:
        return db.query(Topic).join(UserSkill, UserSkill.topic_id == Topic.id).filter(
            UserSkill.user_id == user_id,
            UserSkill.proficiency_level >= STRONG_TOPIC_THRESHOLD,
        ).order_by(UserSkill.proficiency_level.desc()).limit(limit).all()

    def get_weak_topics(self, db: Session, user_id: str, limit: int = 5) -> List[Topic]:
        return db.query(Topic).join(UserSkill, UserSkill.topic_id == Topic.id).filter(
            UserSkill.user_id == user_id,
            UserSkill.proficiency_level < WEAK_TOPIC_THRESHOLD,
        ).order_by(UserSkill.proficiency_level.asc()).limit(limit).all()

    # -------------------------------------------------------------------------
    # Engagement
    # -------------------------------------------------------------------------

    def update_streak(self, db: Session, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Advance the daily streak for activity at ``now``.

        Same calendar day: unchanged. Previous calendar day: +1.
        Anything else (including first activity): reset to 1.

        Returns:
            The streak after the update
        """
        now = now or datetime.utcnow()
        user = db.query(User).filter(User.id == user_id).with_for_update().first()
        if user is None:
            raise NotFoundError("user", user_id)

        today = now.date()
        last = user.last_active_at.date() if user.last_active_at else None

        if last == today and user.current_streak_days:
            pass
        elif last == today - timedelta(days=1):
            user.current_streak_days = (user.current_streak_days or 0) + 1
        else:
            user.current_streak_days = 1

        user.last_active_at = now
        db.flush()
        return user.current_streak_days

    def add_study_time(self, db: Session, user_id: str, seconds: int) -> None:
        if seconds <= 0:
            return
        db.query(User).filter(User.id == user_id).update(
            {User.total_study_time_seconds: User.total_study_time_seconds + seconds},
            synchronize_session="fetch",
        )
        db.flush()

    def get_user_stats(self, db: Session, user_id: str) -> Dict[str, Any]:
        """
        Get comprehensive statistics for a user.

        Returns:
            Dict with attempt totals, accuracy (percent), streak, study time,
            distinct questions answered, problems attempted/solved, average
            difficulty of attempted questions, and strong/weak topic names
        """
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("user", user_id)

        total, correct, distinct_questions = db.query(
            func.count(QuestionAttempt.id),
            func.coalesce(func.sum(case((QuestionAttempt.is_correct == True, 1), else_=0)), 0),  # noqa: E712
            func.count(func.distinct(QuestionAttempt.question_id)),
        ).filter(QuestionAttempt.user_id == user_id).one()

        problem_rows = db.query(
            Question.problem_id,
            func.max(case((QuestionAttempt.is_correct == True, 1), else_=0)),  # noqa: E712
        ).join(Question, Question.id == QuestionAttempt.question_id).filter(
            QuestionAttempt.user_id == user_id,
            Question.problem_id.isnot(None),
        ).group_by(Question.problem_id).all()

        avg_difficulty = db.query(func.avg(Question.difficulty_score)).join(
            QuestionAttempt, QuestionAttempt.question_id == Question.id
        ).filter(QuestionAttempt.user_id == user_id).scalar()

        return {
            "total_attempts": total,
            "correct_attempts": int(correct),
            "accuracy_rate": round(correct / total * 100, 1) if total else 0.0,
            "current_streak_days": user.current_streak_days or 0,
            "total_study_time_seconds": user.total_study_time_seconds or 0,
            "questions_answered": distinct_questions,
            "problems_attempted": len(problem_rows),
            "problems_solved": sum(1 for _, solved in problem_rows if solved),
            "average_difficulty": round(float(avg_difficulty), 1) if avg_difficulty is not None else 0.0,
            "strong_topics": [t.name for t in self.get_strong_topics(db, user_id)],
            "weak_topics": [t.name for t in self.get_weak_topics(db, user_id)],
        }
