"""
BizModelAI — Application Configuration

Every tunable of the engine (Gemini model chain, store, cache, generation
timing, view retention) comes from environment variables or a local .env
file.  Durations are validated at load time so a bad deployment fails at
startup rather than mid-generation.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the BizModelAI engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Gemini LLM (narrative content)
    # ------------------------------------------------------------------ #
    GEMINI_API_KEY: str
    GEMINI_MODEL_PRIMARY: str = "gemini-3-pro-preview"
    GEMINI_MODEL_FALLBACK: str = "gemini-3-flash-preview"
    GEMINI_MODEL_STABLE: str = "gemini-2.5-flash"
    GEMINI_MAX_ATTEMPTS: int = 3

    # ------------------------------------------------------------------ #
    # Redis – key/value store for cache, lock and view ledgers.
    # Empty string selects the in-process store.
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""

    # ------------------------------------------------------------------ #
    # Content cache
    # ------------------------------------------------------------------ #
    CACHE_KEY_PREFIX: str = "ai-cache-"
    CACHE_VERSION: str = "v3.0"
    CACHE_TTL_SECONDS: float = 3600.0
    CACHE_RESET_DEBOUNCE_SECONDS: float = 3.0

    # ------------------------------------------------------------------ #
    # Generation pipeline
    # ------------------------------------------------------------------ #
    GENERATION_STEP_TIMEOUT_SECONDS: float = 15.0
    GENERATION_PIPELINE_TIMEOUT_SECONDS: float = 90.0
    GENERATION_MIN_DURATION_SECONDS: float = 25.0
    GENERATION_LOCK_STALE_SECONDS: float = 120.0
    PROGRESS_TICK_SECONDS: float = 0.5

    # ------------------------------------------------------------------ #
    # Report view / unlock ledgers
    # ------------------------------------------------------------------ #
    REPORT_VIEW_RETENTION_DAYS: int = 30

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def uses_redis(self) -> bool:
        return bool(self.REDIS_URL.strip())

    @field_validator(
        "CACHE_TTL_SECONDS",
        "GENERATION_STEP_TIMEOUT_SECONDS",
        "GENERATION_PIPELINE_TIMEOUT_SECONDS",
        "GENERATION_LOCK_STALE_SECONDS",
        "PROGRESS_TICK_SECONDS",
    )
    @classmethod
    def _duration_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Duration must be positive, got {v}")
        return v

    @field_validator("GENERATION_MIN_DURATION_SECONDS", "CACHE_RESET_DEBOUNCE_SECONDS")
    @classmethod
    def _duration_must_not_be_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Duration must not be negative, got {v}")
        return v

    @field_validator("GEMINI_MAX_ATTEMPTS", "REPORT_VIEW_RETENTION_DAYS")
    @classmethod
    def _count_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, parsed once.

    Tests that change the environment must call ``get_settings.cache_clear()``.
    """
    return Settings()  # type: ignore[call-arg]
