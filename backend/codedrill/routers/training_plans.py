"""
Training Plans Router

Create, browse and work through multi-day practice plans.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from codedrill.database import get_db
from codedrill.dependencies.auth import get_current_user
from codedrill.dependencies.services import get_difficulty_adapter
from codedrill.exceptions import ValidationFailed
from codedrill.models.models import User
from codedrill.routers.questions import QuestionResponse, to_question_response
from codedrill.schemas.requests import CreatePlanRequest, validate_create_plan
from codedrill.services import training_plan as plans
from codedrill.services.training_plan import DifficultyAdapter

router = APIRouter(prefix="/api/training-plans", tags=["training-plans"])


class PlanResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    plan_type: Optional[str] = None
    target_topics: Optional[List[str]] = None
    target_patterns: Optional[List[str]] = None
    difficulty_min: float
    difficulty_max: float
    duration_days: int
    questions_per_day: int
    adaptive_difficulty: bool
    progress_percentage: float
    status: str
    start_date: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]
    total: int
    limit: int
    offset: int


class PlanItemResponse(BaseModel):
    id: str
    plan_id: str
    question_id: str
    sequence_number: int
    day_number: int
    scheduled_for: datetime
    item_type: str
    is_completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NextItemResponse(BaseModel):
    plan_completed: bool
    item: Optional[PlanItemResponse] = None
    question: Optional[QuestionResponse] = None


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    request: CreatePlanRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a plan and schedule its questions.

    The questions come from the requested difficulty band (and topics or
    patterns, when given). A small pool yields fewer items than
    duration_days * questions_per_day.
    """
    errors = validate_create_plan(request)
    if errors:
        raise ValidationFailed(errors, "Invalid training plan")
    return plans.create_training_plan(db, current_user.id, request)


@router.get("", response_model=PlanListResponse)
def list_plans(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = plans.list_plans(db, current_user.id, limit=limit, offset=offset)
    return PlanListResponse(
        plans=[PlanResponse.model_validate(p) for p in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{plan_id}", response_model=PlanResponse)
def get_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return plans.get_plan(db, plan_id, current_user.id)


@router.get("/{plan_id}/next", response_model=NextItemResponse)
def get_next(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """The next question to work on. Finishing the last item completes the plan."""
    item = plans.get_next_item(db, plan_id, current_user.id)
    if item is None:
        return NextItemResponse(plan_completed=True)
    return NextItemResponse(
        plan_completed=False,
        item=PlanItemResponse.model_validate(item),
        question=to_question_response(item.question),
    )


@router.get("/{plan_id}/items", response_model=List[PlanItemResponse])
def get_items(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return plans.get_plan_items(db, plan_id, current_user.id)


@router.get("/{plan_id}/today", response_model=List[PlanItemResponse])
def get_today(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return plans.get_todays_items(db, plan_id, current_user.id)


@router.post("/{plan_id}/items/{item_id}/complete", response_model=PlanItemResponse)
def complete_item(
    plan_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    adapter: DifficultyAdapter = Depends(get_difficulty_adapter),
    current_user: User = Depends(get_current_user),
):
    return plans.complete_item(db, plan_id, current_user.id, item_id, adapter=adapter)


@router.post("/{plan_id}/pause", response_model=PlanResponse)
def pause(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return plans.pause_plan(db, plan_id, current_user.id)


@router.post("/{plan_id}/resume", response_model=PlanResponse)
def resume(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return plans.resume_plan(db, plan_id, current_user.id)


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    plan_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    plans.delete_plan(db, plan_id, current_user.id)
