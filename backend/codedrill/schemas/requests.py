"""
Request Schemas and Validators

Pydantic models describe the shape of each request; the validate_*
functions check ranges and cross-field rules and return a list of
FieldError (empty when the request is acceptable). Routers raise
ValidationFailed with that list before touching the database.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from codedrill.exceptions import FieldError


MAX_PLAN_DURATION_DAYS = 365
MAX_QUESTIONS_PER_DAY = 50
MAX_TIME_TAKEN_SECONDS = 24 * 60 * 60


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SubmitAnswerRequest(BaseModel):
    user_answer: Dict[str, Any]
    time_taken_seconds: int
    hints_used: int = 0
    confidence_level: Optional[int] = None  # 1-5
    training_plan_id: Optional[str] = None


class CreatePlanRequest(BaseModel):
    name: str
    description: Optional[str] = None
    plan_type: Optional[str] = "custom"
    duration_days: int
    questions_per_day: int = 5
    difficulty_min: float = 0.0
    difficulty_max: float = 100.0
    adaptive_difficulty: bool = True
    target_topics: Optional[List[str]] = None
    target_patterns: Optional[List[str]] = None
    start_date: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


# =============================================================================
# VALIDATORS
# =============================================================================

def validate_quality(quality: Any) -> List[FieldError]:
    if isinstance(quality, bool) or not isinstance(quality, int):
        return [FieldError("quality", "must be an integer")]
    if quality < 0 or quality > 5:
        return [FieldError("quality", "must be between 0 and 5")]
    return []


def validate_hint_level(level: Any, max_level: int = 3) -> List[FieldError]:
    if isinstance(level, bool) or not isinstance(level, int):
        return [FieldError("level", "must be an integer")]
    if level < 1 or level > max_level:
        return [FieldError("level", f"must be between 1 and {max_level}")]
    return []


def validate_submit_answer(request: SubmitAnswerRequest, max_hint_level: int = 3) -> List[FieldError]:
    """Range checks for an answer submission."""
    errors = []

    if not request.user_answer:
        errors.append(FieldError("user_answer", "must not be empty"))
    if request.time_taken_seconds < 0:
        errors.append(FieldError("time_taken_seconds", "must not be negative"))
    elif request.time_taken_seconds > MAX_TIME_TAKEN_SECONDS:
        errors.append(FieldError("time_taken_seconds", "must be at most one day"))
    if request.hints_used < 0 or request.hints_used > max_hint_level:
        errors.append(FieldError("hints_used", f"must be between 0 and {max_hint_level}"))
    if request.confidence_level is not None and not 1 <= request.confidence_level <= 5:
        errors.append(FieldError("confidence_level", "must be between 1 and 5"))
    if request.training_plan_id is not None and not request.training_plan_id.strip():
        errors.append(FieldError("training_plan_id", "must not be blank"))

    return errors


def validate_create_plan(request: CreatePlanRequest) -> List[FieldError]:
    """
    Range and consistency checks for a new training plan.

    The difficulty band must lie within 0-100 with min <= max.
    """
    errors = []

    if not request.name:
        errors.append(FieldError("name", "is required"))
    elif len(request.name) > 200:
        errors.append(FieldError("name", "must be at most 200 characters"))

    if not 1 <= request.duration_days <= MAX_PLAN_DURATION_DAYS:
        errors.append(FieldError("duration_days", f"must be between 1 and {MAX_PLAN_DURATION_DAYS}"))
    if not 1 <= request.questions_per_day <= MAX_QUESTIONS_PER_DAY:
        errors.append(FieldError("questions_per_day", f"must be between 1 and {MAX_QUESTIONS_PER_DAY}"))

    for name in ("difficulty_min", "difficulty_max"):
        value = getattr(request, name)
        if not 0 <= value <= 100:
            errors.append(FieldError(name, "must be between 0 and 100"))
    if request.difficulty_min > request.difficulty_max:
        errors.append(FieldError("difficulty_min", "must not exceed difficulty_max"))

    if request.plan_type is not None and request.plan_type not in ("preset", "custom", "ai_generated"):
        errors.append(FieldError("plan_type", "must be one of preset, custom, ai_generated"))
    if request.target_topics is not None and any(not t for t in request.target_topics):
        errors.append(FieldError("target_topics", "must not contain blank ids"))
    if request.target_patterns is not None and any(not p for p in request.target_patterns):
        errors.append(FieldError("target_patterns", "must not contain blank names"))

    return errors
