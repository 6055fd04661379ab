"""
Reviews Router

Provides endpoints for the spaced repetition review queue.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from codedrill.database import get_db
from codedrill.dependencies.auth import get_current_user
from codedrill.models.models import User
from codedrill.services.spaced_repetition import get_due_reviews, get_review_stats

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


class ReviewStateResponse(BaseModel):
    question_id: str
    easiness_factor: float
    interval_days: int
    repetitions: int
    next_review_at: datetime
    last_review_at: Optional[datetime] = None
    quality_rating: Optional[int] = None

    class Config:
        from_attributes = True


class DueReviewsResponse(BaseModel):
    reviews: List[ReviewStateResponse]
    count: int


class ReviewStatsResponse(BaseModel):
    total: int
    due: int
    mature: int


@router.get("/due", response_model=DueReviewsResponse)
def due_reviews(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Questions whose review date has passed, most overdue first."""
    reviews = get_due_reviews(db, current_user.id, limit=limit)
    return DueReviewsResponse(
        reviews=[ReviewStateResponse.model_validate(r) for r in reviews],
        count=len(reviews),
    )


@router.get("/stats", response_model=ReviewStatsResponse)
def review_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ReviewStatsResponse(**get_review_stats(db, current_user.id))
