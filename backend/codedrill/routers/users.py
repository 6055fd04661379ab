"""
Users Router

The signed-in user's statistics, topic skills and attempt history.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from codedrill.database import get_db
from codedrill.dependencies.auth import get_current_user
from codedrill.dependencies.services import get_proficiency_tracker
from codedrill.models.models import User
from codedrill.routers.questions import AttemptResponse
from codedrill.services.proficiency import ProficiencyTracker
from codedrill.services.question_bank import get_recent_attempts

router = APIRouter(prefix="/api/users/me", tags=["users"])


class UserStatsResponse(BaseModel):
    total_attempts: int
    correct_attempts: int
    accuracy_rate: float
    current_streak_days: int
    total_study_time_seconds: int
    questions_answered: int
    problems_attempted: int
    problems_solved: int
    average_difficulty: float
    strong_topics: List[str]
    weak_topics: List[str]


class SkillResponse(BaseModel):
    topic_id: str
    proficiency_level: float
    questions_attempted: int
    questions_correct: int
    improvement_rate: Optional[float] = None
    needs_review: bool
    last_practiced_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/stats", response_model=UserStatsResponse)
def my_stats(
    db: Session = Depends(get_db),
    tracker: ProficiencyTracker = Depends(get_proficiency_tracker),
    current_user: User = Depends(get_current_user),
):
    return UserStatsResponse(**tracker.get_user_stats(db, current_user.id))


@router.get("/skills", response_model=List[SkillResponse])
def my_skills(
    db: Session = Depends(get_db),
    tracker: ProficiencyTracker = Depends(get_proficiency_tracker),
    current_user: User = Depends(get_current_user),
):
    """All topic skills, strongest first."""
    return tracker.get_skills(db, current_user.id)


@router.get("/skills/{topic_id}", response_model=SkillResponse)
def my_skill(
    topic_id: str,
    db: Session = Depends(get_db),
    tracker: ProficiencyTracker = Depends(get_proficiency_tracker),
    current_user: User = Depends(get_current_user),
):
    return tracker.get_skill(db, current_user.id, topic_id)


@router.get("/review-queue", response_model=List[SkillResponse])
def my_review_queue(
    db: Session = Depends(get_db),
    tracker: ProficiencyTracker = Depends(get_proficiency_tracker),
    current_user: User = Depends(get_current_user),
):
    """Topics below the mastery threshold whose review date has come."""
    return tracker.get_review_queue(db, current_user.id)


@router.get("/attempts", response_model=List[AttemptResponse])
def my_recent_attempts(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_recent_attempts(db, current_user.id, limit=limit)
