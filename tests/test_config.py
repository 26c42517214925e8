"""Unit tests for Settings validation."""
import pytest
from pydantic import ValidationError

from app.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(GEMINI_API_KEY="k", REDIS_URL="")
        assert settings.uses_redis is False
        assert settings.CACHE_VERSION == "v3.0"
        assert settings.allowed_origins_list == ["*"]

    def test_redis_url_selects_redis(self):
        assert Settings(GEMINI_API_KEY="k", REDIS_URL="redis://localhost:6379/0").uses_redis is True

    def test_origins_split(self):
        settings = Settings(GEMINI_API_KEY="k", ALLOWED_ORIGINS="https://a.com, https://b.com")
        assert settings.allowed_origins_list == ["https://a.com", "https://b.com"]

    @pytest.mark.parametrize("field", ["GENERATION_STEP_TIMEOUT_SECONDS", "PROGRESS_TICK_SECONDS"])
    def test_non_positive_duration_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(GEMINI_API_KEY="k", **{field: 0})

    def test_zero_minimum_duration_allowed(self):
        assert Settings(GEMINI_API_KEY="k", GENERATION_MIN_DURATION_SECONDS=0).GENERATION_MIN_DURATION_SECONDS == 0

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValidationError):
            Settings(GEMINI_API_KEY="k", CACHE_RESET_DEBOUNCE_SECONDS=-1)
