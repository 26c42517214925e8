"""
BizModelAI — Generation orchestrator.

Drives the six-stage report pipeline for one set of quiz answers:

  1. profile-analysis           trait scores
  2. model-matching             ranked business models
  3. insight-generation         cached payload, else preview insights
  4. characteristic-generation  six short strengths
  5. description-generation     fit and avoid texts, run concurrently
  6. finalization               detailed analysis, cache write, duration floor

Every external call is bounded by the step timeout and by whatever remains
of the pipeline ceiling.  A call that fails or times out is replaced with
deterministic content from ``fallback_content`` and the pipeline carries
on, so a run that gets the lock always ends ``completed`` unless it is
cancelled.  Only the single-flight lock and the pure scoring stages may
raise to the caller.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import time
from typing import Any, Awaitable, Callable, Optional

import structlog

from app.config import get_settings
from app.schemas.quiz import QuizAnswers
from app.schemas.report import (
    CachedPayload,
    GenerationResult,
    ModelScore,
    NarrativeAnalysis,
    ProgressEvent,
    StageRecord,
)
from app.services import fallback_content
from app.services.cache_service import ContentCache
from app.services.generation_lock import GenerationLock
from app.services.progress import ProgressTracker
from app.services.ranking_service import (
    BEST_FIT_COUNT,
    RankingService,
    bottom_matches,
    top_matches,
)
from app.services.report_tracker import ReportViewTracker
from app.services.trait_service import TraitService
from app.utils.storage import KeyValueStore

logger = structlog.get_logger(__name__)

# (name, estimated seconds) in execution order.
STAGES: tuple[tuple[str, float], ...] = (
    ("profile-analysis", 3.0),
    ("model-matching", 5.0),
    ("insight-generation", 4.0),
    ("characteristic-generation", 3.0),
    ("description-generation", 4.0),
    ("finalization", 5.0),
)
STAGE_NAMES: tuple[str, ...] = tuple(name for name, _ in STAGES)

ProgressCallback = Callable[[ProgressEvent], Any]
CompletionCallback = Callable[[GenerationResult], Any]


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _StepFailed(Exception):
    """A bounded external call did not produce a value."""


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class GenerationOrchestrator:
    """Runs the report pipeline with per-call deadlines and fallbacks.

    Parameters
    ----------
    store:
        Shared key/value store backing the lock, cache and view ledger.
    narrative:
        Object exposing the ``generate_*`` coroutines of
        ``NarrativeService``.  Defaults to a Gemini-backed instance.
    cache, view_tracker:
        Optional overrides; built over ``store`` when omitted.
    step_timeout, pipeline_timeout, min_duration, tick_seconds:
        Override the ``GENERATION_*`` / ``PROGRESS_TICK_SECONDS`` settings.
    clock:
        Monotonic clock for deadlines, the duration floor and progress.
    """

    def __init__(
        self,
        store: KeyValueStore,
        narrative: Any | None = None,
        cache: ContentCache | None = None,
        view_tracker: ReportViewTracker | None = None,
        step_timeout: float | None = None,
        pipeline_timeout: float | None = None,
        min_duration: float | None = None,
        tick_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()

        if narrative is None:
            from app.services.narrative_service import NarrativeService

            narrative = NarrativeService()

        self._store = store
        self._narrative = narrative
        self._cache = cache or ContentCache(store)
        self._view_tracker = view_tracker or ReportViewTracker(store)
        self._traits = TraitService()
        self._ranking = RankingService()
        self._clock = clock

        self.step_timeout = (
            settings.GENERATION_STEP_TIMEOUT_SECONDS if step_timeout is None else step_timeout
        )
        self.pipeline_timeout = (
            settings.GENERATION_PIPELINE_TIMEOUT_SECONDS
            if pipeline_timeout is None
            else pipeline_timeout
        )
        self.min_duration = (
            settings.GENERATION_MIN_DURATION_SECONDS if min_duration is None else min_duration
        )
        self.tick_seconds = settings.PROGRESS_TICK_SECONDS if tick_seconds is None else tick_seconds
        self._stale_after = settings.GENERATION_LOCK_STALE_SECONDS

        self.state = PipelineState.IDLE
        self.stage_index: Optional[int] = None
        self.recovered_with_fallback = False
        self.stages: list[StageRecord] = []

        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False
        self._deadline = 0.0
        self._progress: Optional[ProgressTracker] = None

    # ══════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════

    async def run(
        self,
        answers: QuizAnswers,
        on_progress: ProgressCallback | None = None,
        on_complete: CompletionCallback | None = None,
        quiz_attempt_id: str | None = None,
        user_email: str | None = None,
    ) -> Optional[GenerationResult]:
        """Run the pipeline once.

        Returns
        -------
        GenerationResult or None
            ``None`` when another generation holds the lock or when the
            run was cancelled.
        """
        if self.state is PipelineState.RUNNING:
            logger.info("generation_already_running")
            return None

        lock = GenerationLock(
            self._store,
            key=GenerationLock.key_for(self._cache.make_key(answers)),
            stale_after_seconds=self._stale_after,
        )
        if not await lock.acquire():
            logger.info("generation_skipped_in_flight")
            return None

        self._cancel_requested = False
        self.recovered_with_fallback = False
        self.state = PipelineState.RUNNING
        log = logger.bind(quiz_attempt_id=quiz_attempt_id)
        log.info("generation_started")

        ticker: Optional[asyncio.Task] = None
        try:
            self._progress = ProgressTracker(
                STAGE_NAMES,
                [estimate for _, estimate in STAGES],
                total_budget=max(self.min_duration, sum(e for _, e in STAGES)),
                clock=self._clock,
            )
            self._progress.start()
            if on_progress is not None:
                ticker = asyncio.create_task(self._tick(on_progress))

            self._task = asyncio.create_task(self._execute(answers))
            try:
                result = await self._task
            except asyncio.CancelledError:
                self.state = PipelineState.CANCELLED
                log.info("generation_cancelled", stage_index=self.stage_index)
                if not self._cancel_requested:
                    raise
                return None
            except Exception:
                self.state = PipelineState.FAILED
                log.exception("generation_failed", stage_index=self.stage_index)
                raise

            if ticker is not None:
                ticker.cancel()
                ticker = None
            final = self._progress.finish()
            if on_progress is not None:
                await self._emit(on_progress, final)

            self.state = PipelineState.COMPLETED
            log.info(
                "generation_completed",
                from_cache=result.from_cache,
                fallback_stages=result.fallback_stages,
            )
            await self._handle_completion(result, answers, on_complete, quiz_attempt_id, user_email)
            return result
        finally:
            if ticker is not None:
                ticker.cancel()
            self._task = None
            await lock.release()

    def cancel(self) -> bool:
        """Abort the in-flight run; the completion callback is not called."""
        if self._task is None or self._task.done():
            return False
        self._cancel_requested = True
        self._task.cancel()
        return True

    # ══════════════════════════════════════════════════════════════════
    # Pipeline
    # ══════════════════════════════════════════════════════════════════

    async def _execute(self, answers: QuizAnswers) -> GenerationResult:
        started = self._clock()
        self._deadline = started + self.pipeline_timeout
        self.stages = [StageRecord(name=name) for name in STAGE_NAMES]

        # ── 1. Profile analysis ─────────────────────────────────────────
        self._begin(0)
        trait_scores = self._traits.compute_trait_scores(answers)
        self._complete(0)

        # ── 2. Model matching ───────────────────────────────────────────
        self._begin(1)
        ranked = self._ranking.rank_models(answers)
        top = top_matches(ranked, BEST_FIT_COUNT)
        bottom = bottom_matches(ranked, BEST_FIT_COUNT)
        top_model: Optional[ModelScore] = top[0] if top else None
        self._complete(1)

        # ── 3. Insights (cache first) ───────────────────────────────────
        self._begin(2)
        cached = await self._cache_lookup(answers)
        cached_analysis: Optional[NarrativeAnalysis] = None
        if cached is not None:
            insights = cached.insights
            cached_analysis = cached.analysis
            self._complete(2)
        else:
            try:
                insights = await self._bounded(
                    "insight-generation",
                    lambda: self._narrative.generate_preview_insights(answers, top_model),
                )
                self._complete(2)
            except _StepFailed as exc:
                insights = fallback_content.preview_insights()
                self._complete(2, error=str(exc))

        # ── 4. Characteristics ──────────────────────────────────────────
        self._begin(3)
        try:
            characteristics = await self._bounded(
                "characteristic-generation",
                lambda: self._narrative.generate_characteristics(answers),
            )
            self._complete(3)
        except _StepFailed as exc:
            characteristics = fallback_content.characteristics(answers)
            self._complete(3, error=str(exc))

        # ── 5. Fit and avoid descriptions ───────────────────────────────
        self._begin(4)
        fit_outcome, avoid_outcome = await asyncio.gather(
            self._bounded_or_error(
                "fit-descriptions",
                lambda: self._narrative.generate_fit_descriptions(answers, top),
            ),
            self._bounded_or_error(
                "avoid-descriptions",
                lambda: self._narrative.generate_avoid_descriptions(answers, bottom),
            ),
        )
        fit_descriptions, fit_error = self._merge_descriptions(
            fit_outcome, fallback_content.fit_descriptions(answers, top)
        )
        avoid_descriptions, avoid_error = self._merge_descriptions(
            avoid_outcome, fallback_content.avoid_descriptions(answers, bottom)
        )
        self._complete(4, error=fit_error or avoid_error)

        # ── 6. Finalization ─────────────────────────────────────────────
        self._begin(5)
        analysis_error: Optional[str] = None
        if cached_analysis is not None:
            analysis = cached_analysis
        elif top_model is None:
            analysis = fallback_content.detailed_analysis(None)
            analysis_error = "no ranked models"
        else:
            try:
                analysis = await self._bounded(
                    "detailed-analysis",
                    lambda: self._narrative.generate_detailed_analysis(answers, top_model),
                )
            except _StepFailed as exc:
                analysis = fallback_content.detailed_analysis(top_model)
                analysis_error = str(exc)

        if cached is None and not self.stages[2].used_fallback and analysis_error is None:
            await self._cache_store(
                answers, CachedPayload(insights=insights, analysis=analysis, top_model=top_model)
            )

        residual = self.min_duration - (self._clock() - started)
        if residual > 0:
            await asyncio.sleep(residual)
        self._complete(5, error=analysis_error)

        return GenerationResult(
            insights=insights,
            analysis=analysis,
            top_model=top_model,
            trait_scores=trait_scores,
            ranked_models=ranked,
            characteristics=characteristics,
            fit_descriptions=fit_descriptions,
            avoid_descriptions=avoid_descriptions,
            stages=[stage.model_copy() for stage in self.stages],
            from_cache=cached is not None,
        )

    # ══════════════════════════════════════════════════════════════════
    # Stage bookkeeping
    # ══════════════════════════════════════════════════════════════════

    def _begin(self, index: int) -> None:
        self.stage_index = index
        self.stages[index].status = "active"
        if self._progress is not None:
            self._progress.begin_stage(index)
        logger.debug("stage_started", stage=STAGE_NAMES[index], stage_index=index)

    def _complete(self, index: int, error: str | None = None) -> None:
        stage = self.stages[index]
        if error is None:
            stage.status = "completed"
        else:
            stage.status = "failed"
            stage.used_fallback = True
            stage.error = error
            self.recovered_with_fallback = True
            logger.warning("stage_fallback_used", stage=stage.name, error=error)
        if self._progress is not None:
            self._progress.complete_stage(index)
        logger.debug("stage_completed", stage=stage.name, used_fallback=stage.used_fallback)

    def _step_budget(self) -> float:
        return min(self.step_timeout, self._deadline - self._clock())

    async def _bounded(self, step: str, call: Callable[[], Awaitable[Any]]) -> Any:
        """Await ``call()`` within the step budget, raising ``_StepFailed``
        on timeout or error."""
        budget = self._step_budget()
        if budget <= 0:
            raise _StepFailed(f"{step}: pipeline deadline exceeded")
        try:
            return await asyncio.wait_for(call(), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning("step_timeout", step=step, timeout_seconds=round(budget, 3))
            raise _StepFailed(f"{step}: timed out after {budget:.1f}s") from None
        except Exception as exc:
            logger.warning("step_error", step=step, error=str(exc))
            raise _StepFailed(f"{step}: {exc}") from exc

    async def _bounded_or_error(
        self, step: str, call: Callable[[], Awaitable[Any]]
    ) -> Any:
        try:
            return await self._bounded(step, call)
        except _StepFailed as exc:
            return exc

    @staticmethod
    def _merge_descriptions(
        outcome: Any, fallback: dict[str, str]
    ) -> tuple[dict[str, str], Optional[str]]:
        """Generated texts where present, fallback texts for the rest."""
        if isinstance(outcome, _StepFailed):
            return dict(fallback), str(outcome)
        merged = {model_id: outcome.get(model_id) or text for model_id, text in fallback.items()}
        missing = [model_id for model_id in fallback if not outcome.get(model_id)]
        if missing:
            return merged, f"missing descriptions for {', '.join(missing)}"
        return merged, None

    # ══════════════════════════════════════════════════════════════════
    # Collaborators
    # ══════════════════════════════════════════════════════════════════

    async def _cache_lookup(self, answers: QuizAnswers) -> Optional[CachedPayload]:
        try:
            entry = await self._cache.get(answers)
        except Exception as exc:
            logger.warning("cache_lookup_failed", error=str(exc))
            return None
        return entry.payload if entry is not None else None

    async def _cache_store(self, answers: QuizAnswers, payload: CachedPayload) -> None:
        try:
            await self._cache.put(answers, payload)
        except Exception as exc:
            logger.warning("cache_store_failed", error=str(exc))

    async def _tick(self, on_progress: ProgressCallback) -> None:
        while True:
            if self._progress is not None:
                await self._emit(on_progress, self._progress.snapshot())
            await asyncio.sleep(self.tick_seconds)

    @staticmethod
    async def _emit(on_progress: ProgressCallback, event: ProgressEvent) -> None:
        try:
            await _maybe_await(on_progress(event))
        except Exception as exc:
            logger.warning("progress_callback_failed", error=str(exc))

    async def _handle_completion(
        self,
        result: GenerationResult,
        answers: QuizAnswers,
        on_complete: CompletionCallback | None,
        quiz_attempt_id: str | None,
        user_email: str | None,
    ) -> None:
        if quiz_attempt_id:
            try:
                await self._view_tracker.mark_viewed(quiz_attempt_id, answers, user_email)
            except Exception as exc:
                logger.warning("mark_viewed_failed", error=str(exc))
        if on_complete is not None:
            await _maybe_await(on_complete(result))
