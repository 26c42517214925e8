"""Unit tests for ReportViewTracker — view and unlock ledgers."""
import pytest

from app.services.report_tracker import ReportViewTracker, answers_hash


@pytest.fixture
def tracker(memory_store, clock):
    return ReportViewTracker(memory_store, clock=clock, retention_days=30)


class TestViews:
    """Tests for mark_viewed/has_viewed."""

    @pytest.mark.asyncio
    async def test_mark_and_check_by_attempt(self, tracker, sample_answers):
        assert await tracker.has_viewed("42") is False
        assert await tracker.mark_viewed("42", sample_answers, "a@example.com") is True
        assert await tracker.has_viewed("42") is True

    @pytest.mark.asyncio
    async def test_mark_is_idempotent(self, tracker, sample_answers):
        await tracker.mark_viewed("42", sample_answers)
        assert await tracker.mark_viewed("42", sample_answers) is False
        assert await tracker.viewed_count() == 1

    @pytest.mark.asyncio
    async def test_match_by_answers_scoped_to_email(self, tracker, sample_answers):
        await tracker.mark_viewed("42", sample_answers, "a@example.com")
        assert await tracker.has_viewed("43", sample_answers, "a@example.com") is True
        assert await tracker.has_viewed("43", sample_answers, "b@example.com") is False
        assert await tracker.has_viewed("43", sample_answers) is True

    @pytest.mark.asyncio
    async def test_different_answers_do_not_match(self, tracker, sample_answers):
        await tracker.mark_viewed("42", sample_answers)
        other = sample_answers.model_copy(update={"risk_comfort_level": 1})
        assert await tracker.has_viewed("43", other) is False

    @pytest.mark.asyncio
    async def test_views_expire(self, tracker, clock, sample_answers):
        await tracker.mark_viewed("42", sample_answers)
        clock.advance(29 * 24 * 3600)
        assert await tracker.has_viewed("42") is True
        clock.advance(24 * 3600)
        assert await tracker.has_viewed("42") is False
        assert await tracker.mark_viewed("42", sample_answers) is True

    @pytest.mark.asyncio
    async def test_clear_views(self, tracker, sample_answers):
        await tracker.mark_viewed("1", sample_answers)
        await tracker.mark_viewed("2", sample_answers)
        assert await tracker.clear_views() == 2
        assert await tracker.viewed_count() == 0

    def test_answers_hash_uses_identifying_fields(self, sample_answers):
        same = sample_answers.model_copy(update={"learning_preference": "reading"})
        assert answers_hash(same) == answers_hash(sample_answers)
        assert len(answers_hash(sample_answers)) == 16


class TestUnlocks:
    """Tests for mark_unlocked/has_unlocked."""

    @pytest.mark.asyncio
    async def test_unlock_idempotent(self, tracker):
        assert await tracker.has_unlocked("42", "user-1") is False
        assert await tracker.mark_unlocked("42", "user-1") is True
        assert await tracker.mark_unlocked("42", "user-1") is False
        assert await tracker.has_unlocked("42", "user-1") is True

    @pytest.mark.asyncio
    async def test_unlock_is_per_user(self, tracker):
        await tracker.mark_unlocked("42", "user-1")
        assert await tracker.has_unlocked("42", "user-2") is False
