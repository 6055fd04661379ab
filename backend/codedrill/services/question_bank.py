"""
Question bank lookups: listing, random selection, hints and attempt history.
"""

from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from codedrill.exceptions import NotFoundError, ValidationFailed
from codedrill.models.models import Question, QuestionAttempt
from codedrill.schemas.requests import validate_hint_level


def get_question(db: Session, question_id: str) -> Question:
    question = db.query(Question).filter(Question.id == question_id).first()
    if question is None:
        raise NotFoundError("question", question_id)
    return question


def _filtered(
    db: Session,
    question_format: Optional[str],
    min_difficulty: float,
    max_difficulty: float,
):
    query = db.query(Question).filter(
        Question.difficulty_score >= min_difficulty,
        Question.difficulty_score <= max_difficulty,
    )
    if question_format:
        query = query.filter(Question.question_format == question_format)
    return query


def list_questions(
    db: Session,
    question_format: Optional[str] = None,
    min_difficulty: float = 0.0,
    max_difficulty: float = 100.0,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Question], int]:
    """Questions in a difficulty band, easiest first, with the total count."""
    query = _filtered(db, question_format, min_difficulty, max_difficulty)
    total = query.count()
    questions = query.order_by(
        Question.difficulty_score.asc(), Question.id.asc()
    ).offset(offset).limit(limit).all()
    return questions, total


def random_question(
    db: Session,
    question_format: Optional[str] = None,
    min_difficulty: float = 0.0,
    max_difficulty: float = 100.0,
    exclude_ids: Optional[List[str]] = None,
) -> Question:
    query = _filtered(db, question_format, min_difficulty, max_difficulty)
    if exclude_ids:
        query = query.filter(Question.id.notin_(exclude_ids))

    question = query.order_by(func.random()).first()
    if question is None:
        raise NotFoundError("question matching the filters")
    return question


def get_hint(question: Question, level: int, max_level: int = 3) -> str:
    """
    The hint for a level (1 = gentlest).

    Raises:
        ValidationFailed: level outside 1..max_level
        NotFoundError: the question has no hint at that level
    """
    errors = validate_hint_level(level, max_level)
    if errors:
        raise ValidationFailed(errors)

    hints = question.hints or []
    if level > len(hints) or not hints[level - 1]:
        raise NotFoundError("hint level", level)
    return hints[level - 1]


def get_user_attempts(db: Session, user_id: str, question_id: str) -> List[QuestionAttempt]:
    return db.query(QuestionAttempt).filter(
        QuestionAttempt.user_id == user_id,
        QuestionAttempt.question_id == question_id,
    ).order_by(QuestionAttempt.attempt_number.asc()).all()


def get_recent_attempts(db: Session, user_id: str, limit: int = 20) -> List[QuestionAttempt]:
    return db.query(QuestionAttempt).filter(
        QuestionAttempt.user_id == user_id
    ).order_by(QuestionAttempt.attempted_at.desc()).limit(limit).all()
