"""Unit tests for GenerationOrchestrator — staged pipeline with fallbacks."""
import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schemas.report import NarrativeAnalysis, NarrativeInsights
from app.services import fallback_content
from app.services.cache_service import ContentCache
from app.services.generation_lock import GenerationLock
from app.services.orchestrator import STAGE_NAMES, GenerationOrchestrator, PipelineState
from app.services.report_tracker import ReportViewTracker

CHARACTERISTICS = ["Bold", "Curious", "Driven", "Focused", "Organised", "Resourceful"]


def make_narrative():
    narrative = MagicMock()
    narrative.generate_preview_insights = AsyncMock(return_value=NarrativeInsights(
        preview_insights="Generated preview",
        key_insights=["k1", "k2", "k3", "k4"],
        success_predictors=["s1", "s2", "s3", "s4"],
    ))
    narrative.generate_characteristics = AsyncMock(return_value=list(CHARACTERISTICS))
    narrative.generate_fit_descriptions = AsyncMock(
        side_effect=lambda answers, top: {m.model_id: f"fit {m.model_id}" for m in top}
    )
    narrative.generate_avoid_descriptions = AsyncMock(
        side_effect=lambda answers, bottom: {m.model_id: f"avoid {m.model_id}" for m in bottom}
    )
    narrative.generate_detailed_analysis = AsyncMock(return_value=NarrativeAnalysis(
        full_analysis="Generated analysis",
        key_insights=["a", "b", "c", "d"],
        personalized_recommendations=["r1", "r2", "r3"],
        risk_factors=["x1", "x2", "x3"],
        success_predictors=["p1", "p2", "p3"],
    ))
    return narrative


def failing_narrative():
    narrative = MagicMock()
    for name in (
        "generate_preview_insights",
        "generate_characteristics",
        "generate_fit_descriptions",
        "generate_avoid_descriptions",
        "generate_detailed_analysis",
    ):
        setattr(narrative, name, AsyncMock(side_effect=RuntimeError("upstream 503")))
    return narrative


async def hang(*args, **kwargs):
    await asyncio.sleep(30)


def lock_key(store, answers):
    return GenerationLock.key_for(ContentCache(store).make_key(answers))


def make_orchestrator(store, narrative, **overrides):
    options = {"step_timeout": 1.0, "pipeline_timeout": 10.0, "min_duration": 0.0, "tick_seconds": 0.01}
    options.update(overrides)
    return GenerationOrchestrator(store, narrative=narrative, **options)


class TestHappyPath:
    """All generation calls succeed."""

    @pytest.mark.asyncio
    async def test_result_uses_generated_content(self, memory_store, sample_answers):
        orchestrator = make_orchestrator(memory_store, make_narrative())
        result = await orchestrator.run(sample_answers)

        assert orchestrator.state is PipelineState.COMPLETED
        assert orchestrator.recovered_with_fallback is False
        assert result.insights.preview_insights == "Generated preview"
        assert result.analysis.full_analysis == "Generated analysis"
        assert result.characteristics == CHARACTERISTICS
        assert result.top_model.model_id == "ai-marketing-agency"
        assert list(result.fit_descriptions) == [m.model_id for m in result.ranked_models[:3]]
        assert list(result.avoid_descriptions) == [
            "handmade-goods",
            "investing-trading",
            "saas-development",
        ]
        assert [s.name for s in result.stages] == list(STAGE_NAMES)
        assert all(s.status == "completed" for s in result.stages)
        assert result.fallback_stages == []
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, memory_store, sample_answers):
        narrative = make_narrative()
        first = await make_orchestrator(memory_store, narrative).run(sample_answers)
        second = await make_orchestrator(memory_store, narrative).run(sample_answers)

        assert second.from_cache is True
        assert second.insights == first.insights
        assert second.analysis == first.analysis
        narrative.generate_preview_insights.assert_awaited_once()
        narrative.generate_detailed_analysis.assert_awaited_once()
        assert (await ContentCache(memory_store).status()).count == 1

    @pytest.mark.asyncio
    async def test_completion_callback_and_view_ledger(self, memory_store, sample_answers):
        completed = []
        orchestrator = make_orchestrator(memory_store, make_narrative())
        result = await orchestrator.run(
            sample_answers,
            on_complete=completed.append,
            quiz_attempt_id="attempt-7",
            user_email="a@example.com",
        )
        assert completed == [result]
        assert await ReportViewTracker(memory_store).has_viewed("attempt-7") is True

    @pytest.mark.asyncio
    async def test_progress_events(self, memory_store, sample_answers):
        events = []
        orchestrator = make_orchestrator(memory_store, make_narrative(), min_duration=0.1)
        await orchestrator.run(sample_answers, on_progress=events.append)

        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert all(p < 100 for p in percents[:-1])


class TestFallbacks:
    """Generation failures degrade content, never the pipeline."""

    @pytest.mark.asyncio
    async def test_always_failing_generator(self, memory_store, sample_answers):
        orchestrator = make_orchestrator(memory_store, failing_narrative())
        result = await orchestrator.run(sample_answers)

        assert orchestrator.state is PipelineState.COMPLETED
        assert orchestrator.recovered_with_fallback is True
        assert result.insights == fallback_content.preview_insights()
        assert result.characteristics == fallback_content.characteristics(sample_answers)
        assert result.analysis == fallback_content.detailed_analysis(result.top_model)
        assert len(result.fit_descriptions) == 3
        assert len(result.avoid_descriptions) == 3
        assert result.fallback_stages == [
            "insight-generation",
            "characteristic-generation",
            "description-generation",
            "finalization",
        ]
        assert (await ContentCache(memory_store).status()).count == 0

    @pytest.mark.asyncio
    async def test_hanging_call_times_out(self, memory_store, sample_answers):
        narrative = make_narrative()
        narrative.generate_characteristics = hang
        orchestrator = make_orchestrator(memory_store, narrative, step_timeout=0.2)

        started = time.monotonic()
        result = await orchestrator.run(sample_answers)
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert result.characteristics == fallback_content.characteristics(sample_answers)
        assert result.fallback_stages == ["characteristic-generation"]
        assert result.insights.preview_insights == "Generated preview"

    @pytest.mark.asyncio
    async def test_pipeline_ceiling_bounds_total_time(self, memory_store, sample_answers):
        narrative = make_narrative()
        narrative.generate_preview_insights = hang
        narrative.generate_characteristics = hang
        narrative.generate_detailed_analysis = hang
        orchestrator = make_orchestrator(memory_store, narrative, step_timeout=5.0, pipeline_timeout=0.3)

        started = time.monotonic()
        result = await orchestrator.run(sample_answers)

        assert time.monotonic() - started < 2.0
        assert orchestrator.state is PipelineState.COMPLETED
        assert "finalization" in result.fallback_stages

    @pytest.mark.asyncio
    async def test_partial_descriptions_are_filled(self, memory_store, sample_answers):
        narrative = make_narrative()
        narrative.generate_fit_descriptions = AsyncMock(
            side_effect=lambda answers, top: {top[0].model_id: "only one"}
        )
        result = await make_orchestrator(memory_store, narrative).run(sample_answers)

        top_ids = [m.model_id for m in result.ranked_models[:3]]
        assert list(result.fit_descriptions) == top_ids
        assert result.fit_descriptions[top_ids[0]] == "only one"
        assert "match for your entrepreneurial journey" in result.fit_descriptions[top_ids[1]]
        assert result.fallback_stages == ["description-generation"]


class TestTiming:
    """Minimum-duration floor."""

    @pytest.mark.asyncio
    async def test_minimum_duration_enforced(self, memory_store, sample_answers):
        orchestrator = make_orchestrator(memory_store, make_narrative(), min_duration=0.3)
        started = time.monotonic()
        await orchestrator.run(sample_answers)
        assert time.monotonic() - started >= 0.3


class TestSingleFlight:
    """Lock-based deduplication."""

    @pytest.mark.asyncio
    async def test_concurrent_runs_execute_once(self, memory_store, sample_answers):
        narrative = make_narrative()
        first = make_orchestrator(memory_store, narrative, min_duration=0.2)
        second = make_orchestrator(memory_store, narrative, min_duration=0.2)

        results = await asyncio.gather(first.run(sample_answers), second.run(sample_answers))

        assert sum(r is not None for r in results) == 1
        narrative.generate_characteristics.assert_awaited_once()
        assert await memory_store.get(lock_key(memory_store, sample_answers)) is None

    @pytest.mark.asyncio
    async def test_different_profiles_run_concurrently(self, memory_store, sample_answers):
        other_answers = sample_answers.model_copy(update={"risk_comfort_level": 1})
        narrative = make_narrative()
        first = make_orchestrator(memory_store, narrative, min_duration=0.2)
        second = make_orchestrator(memory_store, narrative, min_duration=0.2)

        results = await asyncio.gather(first.run(sample_answers), second.run(other_answers))

        assert all(r is not None for r in results)
        assert narrative.generate_characteristics.await_count == 2
        assert first.state is second.state is PipelineState.COMPLETED

    @pytest.mark.asyncio
    async def test_lock_is_scoped_to_profile(self, memory_store, sample_answers):
        other_answers = sample_answers.model_copy(update={"main_motivation": "flexibility"})
        held = json.dumps({"active": True, "since": time.time(), "owner": "x"})
        await memory_store.set(lock_key(memory_store, other_answers), held)

        result = await make_orchestrator(memory_store, make_narrative()).run(sample_answers)

        assert result is not None
        assert await memory_store.get(lock_key(memory_store, other_answers)) == held

    @pytest.mark.asyncio
    async def test_fresh_foreign_lock_short_circuits(self, memory_store, sample_answers):
        await memory_store.set(lock_key(memory_store, sample_answers), json.dumps({"active": True, "since": time.time(), "owner": "x"}))
        orchestrator = make_orchestrator(memory_store, make_narrative())
        assert await orchestrator.run(sample_answers) is None
        assert orchestrator.state is PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_stale_lock_is_cleared(self, memory_store, sample_answers):
        stale = {"active": True, "since": time.time() - 10_000, "owner": "x"}
        await memory_store.set(lock_key(memory_store, sample_answers), json.dumps(stale))
        result = await make_orchestrator(memory_store, make_narrative()).run(sample_answers)
        assert result is not None
        assert await memory_store.get(lock_key(memory_store, sample_answers)) is None

    @pytest.mark.asyncio
    async def test_lock_released_after_hard_failure(self, memory_store, sample_answers):
        orchestrator = make_orchestrator(memory_store, make_narrative())
        orchestrator._ranking = MagicMock()
        orchestrator._ranking.rank_models.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await orchestrator.run(sample_answers)
        assert orchestrator.state is PipelineState.FAILED
        assert await memory_store.get(lock_key(memory_store, sample_answers)) is None


class TestCancellation:
    """User-initiated abort."""

    @pytest.mark.asyncio
    async def test_cancel_skips_completion(self, memory_store, sample_answers):
        narrative = make_narrative()
        narrative.generate_preview_insights = hang
        orchestrator = make_orchestrator(memory_store, narrative, step_timeout=10.0)
        completed = []

        task = asyncio.create_task(orchestrator.run(sample_answers, on_complete=completed.append))
        for _ in range(200):
            if orchestrator.stage_index == 2:
                break
            await asyncio.sleep(0.01)

        assert orchestrator.cancel() is True
        assert await task is None
        assert completed == []
        assert orchestrator.state is PipelineState.CANCELLED
        assert await memory_store.get(lock_key(memory_store, sample_answers)) is None

    def test_cancel_when_idle(self, memory_store):
        assert make_orchestrator(memory_store, make_narrative()).cancel() is False
