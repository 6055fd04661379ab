"""
Questions Router

Question bank browsing, hints, attempt history and answer submission.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from codedrill.config import EngineConfig, get_engine_config
from codedrill.database import get_db
from codedrill.dependencies.auth import get_current_user
from codedrill.dependencies.services import get_submission_service
from codedrill.models.models import Question, User
from codedrill.schemas.requests import SubmitAnswerRequest
from codedrill.services import question_bank
from codedrill.services.submission import SubmissionService

router = APIRouter(prefix="/api/questions", tags=["questions"])


class QuestionResponse(BaseModel):
    id: str
    problem_id: Optional[str] = None
    question_type: str
    question_format: str
    question_text: str
    answer_options: Optional[Any] = None
    difficulty_score: float
    estimated_time_seconds: Optional[int] = None
    hint_count: int = 0
    total_attempts: int = 0
    correct_attempts: int = 0

    class Config:
        from_attributes = True


class QuestionListResponse(BaseModel):
    questions: List[QuestionResponse]
    total: int
    limit: int
    offset: int


class HintResponse(BaseModel):
    question_id: str
    level: int
    hint: str
    hints_available: int


class AttemptResponse(BaseModel):
    id: str
    question_id: str
    user_answer: Dict[str, Any]
    is_correct: bool
    time_taken_seconds: int
    hints_used: int
    attempt_number: int
    points_earned: int
    training_plan_id: Optional[str] = None
    attempted_at: datetime

    class Config:
        from_attributes = True


class SubmitAnswerResponse(BaseModel):
    is_correct: bool
    correct_answer: Dict[str, Any]
    explanation: str
    wrong_answer_explanation: Optional[str] = None
    attempt_id: str
    attempt_number: int
    points_earned: int
    quality_rating: int
    new_proficiency_level: Optional[float] = None


def to_question_response(question: Question) -> QuestionResponse:
    response = QuestionResponse.model_validate(question)
    response.hint_count = len([h for h in (question.hints or []) if h])
    return response


@router.get("", response_model=QuestionListResponse)
def list_questions(
    question_format: Optional[str] = None,
    min_difficulty: float = Query(0.0, ge=0, le=100),
    max_difficulty: float = Query(100.0, ge=0, le=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List questions in a difficulty band, easiest first."""
    questions, total = question_bank.list_questions(
        db, question_format, min_difficulty, max_difficulty, limit, offset
    )
    return QuestionListResponse(
        questions=[to_question_response(q) for q in questions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/random", response_model=QuestionResponse)
def get_random_question(
    question_format: Optional[str] = None,
    min_difficulty: float = Query(0.0, ge=0, le=100),
    max_difficulty: float = Query(100.0, ge=0, le=100),
    exclude: Optional[List[str]] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    question = question_bank.random_question(db, question_format, min_difficulty, max_difficulty, exclude)
    return to_question_response(question)


@router.get("/{question_id}", response_model=QuestionResponse)
def get_question(
    question_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_question_response(question_bank.get_question(db, question_id))


@router.get("/{question_id}/hint", response_model=HintResponse)
def get_hint(
    question_id: str,
    level: int = 1,
    db: Session = Depends(get_db),
    config: EngineConfig = Depends(get_engine_config),
    current_user: User = Depends(get_current_user),
):
    """
    Reveal a hint. Levels run from 1 (a nudge) to 3 (nearly the answer).
    """
    question = question_bank.get_question(db, question_id)
    hint = question_bank.get_hint(question, level, config.max_hint_level)
    return HintResponse(
        question_id=question.id,
        level=level,
        hint=hint,
        hints_available=len([h for h in (question.hints or []) if h]),
    )


@router.get("/{question_id}/attempts", response_model=List[AttemptResponse])
def get_my_attempts(
    question_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    question_bank.get_question(db, question_id)
    return question_bank.get_user_attempts(db, current_user.id, question_id)


@router.post("/{question_id}/answer", response_model=SubmitAnswerResponse)
def submit_answer(
    question_id: str,
    request: SubmitAnswerRequest,
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """
    Grade an answer and record the attempt.

    The verdict and points are final once returned; review schedule,
    proficiency, streak and plan progress are updated afterwards on a
    best-effort basis.
    """
    result = service.submit(db, current_user.id, question_id, request)
    return SubmitAnswerResponse(
        is_correct=result.is_correct,
        correct_answer=result.correct_answer,
        explanation=result.explanation,
        wrong_answer_explanation=result.wrong_answer_explanation,
        attempt_id=result.attempt_id,
        attempt_number=result.attempt_number,
        points_earned=result.points_earned,
        quality_rating=result.quality,
        new_proficiency_level=result.new_proficiency_level,
    )
