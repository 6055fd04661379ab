"""
Problems Router

Difficulty breakdowns and recalibration for coding problems.
"""

from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from codedrill.database import get_db
from codedrill.dependencies.auth import get_current_user
from codedrill.dependencies.services import get_difficulty_scorer
from codedrill.models.models import User
from codedrill.services.difficulty_scorer import (
    DifficultyScorer,
    get_problem,
    personalized_difficulty,
    recalibrate_difficulty,
)

router = APIRouter(prefix="/api/problems", tags=["problems"])


class DifficultyResponse(BaseModel):
    problem_id: str
    score: float
    tier: str
    color: str
    components: Dict[str, float]
    personalized_score: float


class RecalibrationResponse(BaseModel):
    problem_id: str
    attempt_count: int
    success_rate: float
    average_time_seconds: float
    previous_score: float
    new_score: float
    changed: bool


@router.get("/{problem_id}/difficulty", response_model=DifficultyResponse)
def get_difficulty(
    problem_id: str,
    db: Session = Depends(get_db),
    scorer: DifficultyScorer = Depends(get_difficulty_scorer),
    current_user: User = Depends(get_current_user),
):
    """Component breakdown plus the difficulty adjusted for the caller's topic skills."""
    problem = get_problem(db, problem_id)
    breakdown = scorer.describe(problem)
    return DifficultyResponse(
        **breakdown,
        personalized_score=round(personalized_difficulty(db, problem.id, current_user.id), 2),
    )


@router.post("/{problem_id}/recalibrate", response_model=RecalibrationResponse)
def recalibrate(
    problem_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return RecalibrationResponse(**recalibrate_difficulty(db, problem_id))
