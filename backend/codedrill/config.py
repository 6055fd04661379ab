"""
Engine configuration.

All tunables of the learning engine live in one frozen EngineConfig that is
built once from the environment and handed to each component at construction
time. Components never call os.getenv themselves.

Usage:
    from codedrill.config import get_engine_config

    config = get_engine_config()
    matcher = TextMatcher.from_config(config)
"""

import os
from dataclasses import dataclass, replace
from functools import lru_cache


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class EngineConfig:
    """Immutable settings shared by the evaluator, scheduler, tracker and planner."""

    # Text answers
    text_similarity_threshold: float = 0.85
    keyword_match_ratio: float = 0.7

    # Code-execution sandbox (Judge0-compatible)
    sandbox_url: str = "http://localhost:2358"
    sandbox_cpu_time_limit: float = 5.0       # seconds
    sandbox_memory_limit: int = 128000        # KB
    sandbox_wall_time_limit: float = 10.0     # seconds
    sandbox_http_timeout: float = 30.0        # seconds, per test case

    # Hints
    max_hint_level: int = 3

    # Proficiency
    needs_review_threshold: float = 70.0

    # Plan adaptation
    adaptation_window: int = 20
    adaptation_min_attempts: int = 5
    high_accuracy_threshold: float = 0.85
    low_accuracy_threshold: float = 0.40

    # Post-commit bookkeeping (proficiency, streak, study time, review schedule)
    side_effect_retries: int = 2

    # Bearer-token verification (tokens are issued elsewhere)
    jwt_secret_key: str = "dev-secret-change-me-dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    def with_overrides(self, **changes) -> "EngineConfig":
        """Return a copy with some fields replaced (used by tests and scripts)."""
        return replace(self, **changes)


def load_engine_config(prefix: str = "CODEDRILL_") -> EngineConfig:
    """Build an EngineConfig from environment variables, falling back to defaults."""
    defaults = EngineConfig()
    return EngineConfig(
        text_similarity_threshold=_env_float(f"{prefix}TEXT_SIMILARITY_THRESHOLD", defaults.text_similarity_threshold),
        keyword_match_ratio=_env_float(f"{prefix}KEYWORD_MATCH_RATIO", defaults.keyword_match_ratio),
        sandbox_url=os.getenv("JUDGE0_URL", defaults.sandbox_url).rstrip("/"),
        sandbox_cpu_time_limit=_env_float(f"{prefix}SANDBOX_CPU_TIME_LIMIT", defaults.sandbox_cpu_time_limit),
        sandbox_memory_limit=_env_int(f"{prefix}SANDBOX_MEMORY_LIMIT", defaults.sandbox_memory_limit),
        sandbox_wall_time_limit=_env_float(f"{prefix}SANDBOX_WALL_TIME_LIMIT", defaults.sandbox_wall_time_limit),
        sandbox_http_timeout=_env_float(f"{prefix}SANDBOX_HTTP_TIMEOUT", defaults.sandbox_http_timeout),
        max_hint_level=_env_int(f"{prefix}MAX_HINT_LEVEL", defaults.max_hint_level),
        needs_review_threshold=_env_float(f"{prefix}NEEDS_REVIEW_THRESHOLD", defaults.needs_review_threshold),
        adaptation_window=_env_int(f"{prefix}ADAPTATION_WINDOW", defaults.adaptation_window),
        adaptation_min_attempts=_env_int(f"{prefix}ADAPTATION_MIN_ATTEMPTS", defaults.adaptation_min_attempts),
        high_accuracy_threshold=_env_float(f"{prefix}HIGH_ACCURACY_THRESHOLD", defaults.high_accuracy_threshold),
        low_accuracy_threshold=_env_float(f"{prefix}LOW_ACCURACY_THRESHOLD", defaults.low_accuracy_threshold),
        side_effect_retries=_env_int(f"{prefix}SIDE_EFFECT_RETRIES", defaults.side_effect_retries),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", defaults.jwt_secret_key).strip(),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", defaults.jwt_algorithm),
    )


@lru_cache(maxsize=1)
def get_engine_config() -> EngineConfig:
    """Dependency for FastAPI routes; built once per process."""
    return load_engine_config()


def reset_engine_config() -> None:
    """Drop the cached config so the next call re-reads the environment."""
    get_engine_config.cache_clear()
