"""
Service providers for routers.

Each provider builds an engine component from the cached EngineConfig.
Tests override these with app.dependency_overrides (for example to give
the submission service a sandbox backed by httpx.MockTransport).
"""

from fastapi import Depends

from codedrill.config import EngineConfig, get_engine_config
from codedrill.services.difficulty_scorer import DifficultyScorer
from codedrill.services.proficiency import ProficiencyTracker
from codedrill.services.submission import SubmissionService
from codedrill.services.training_plan import DifficultyAdapter


def get_submission_service(config: EngineConfig = Depends(get_engine_config)) -> SubmissionService:
    return SubmissionService.from_config(config)


def get_proficiency_tracker(config: EngineConfig = Depends(get_engine_config)) -> ProficiencyTracker:
    return ProficiencyTracker.from_config(config)


def get_difficulty_adapter(config: EngineConfig = Depends(get_engine_config)) -> DifficultyAdapter:
    return DifficultyAdapter.from_config(config)


def get_difficulty_scorer() -> DifficultyScorer:
    return DifficultyScorer()
