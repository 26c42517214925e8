"""
BizModelAI — Reports API

Report generation plus operator cache actions:
  - POST   /generate                         run the generation pipeline
  - GET    /{quiz_attempt_id}/access         viewed / unlocked flags
  - POST   /{quiz_attempt_id}/unlock         idempotent unlock
  - GET    /cache/status                     entry count, size, oldest entry
  - POST   /cache/reset                      invalidate every entry
  - DELETE /cache                            delete every entry (debounced)
  - DELETE /views                            forget every recorded view
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas.report import (
    CacheResetResponse,
    CacheStatus,
    GenerateReportRequest,
    GenerationResult,
    ReportAccessResponse,
    ReportUnlockRequest,
)
from app.services.cache_service import ContentCache
from app.services.narrative_service import NarrativeService
from app.services.orchestrator import GenerationOrchestrator
from app.services.report_tracker import ReportViewTracker
from app.utils.storage import KeyValueStore, get_store

logger = structlog.get_logger("bizmodelai.api.reports")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_narrative_service: NarrativeService | None = None


def _get_narrative_service() -> NarrativeService:
    global _narrative_service
    if _narrative_service is None:
        _narrative_service = NarrativeService()
    return _narrative_service


# ──────────────────────────────────────────────────────────────────────────────
# POST /generate
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/generate",
    response_model=GenerationResult,
    summary="Generate the full AI report for a set of quiz answers",
)
async def generate_report(
    body: GenerateReportRequest,
    store: KeyValueStore = Depends(get_store),
) -> GenerationResult:
    """Run the six-stage pipeline.

    Failed or slow generation calls are replaced with fallback content, so
    a successful response may still list stages with ``used_fallback``.
    Returns **409** when another generation is in flight.
    """
    log = logger.bind(quiz_attempt_id=body.quiz_attempt_id)
    orchestrator = GenerationOrchestrator(store, narrative=_get_narrative_service())

    result = await orchestrator.run(
        body.answers,
        quiz_attempt_id=body.quiz_attempt_id,
        user_email=body.user_email,
    )
    if result is None:
        log.info("generate_report_conflict")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A report generation is already in progress.",
        )
    return result


# ──────────────────────────────────────────────────────────────────────────────
# Cache operator actions
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/cache/status", response_model=CacheStatus, summary="Content cache statistics")
async def cache_status(store: KeyValueStore = Depends(get_store)) -> CacheStatus:
    return await ContentCache(store).status()


@router.post(
    "/cache/reset",
    response_model=CacheResetResponse,
    summary="Invalidate every cached entry",
)
async def cache_reset(store: KeyValueStore = Depends(get_store)) -> CacheResetResponse:
    await ContentCache(store).invalidate_all()
    logger.info("cache_reset_requested")
    return CacheResetResponse(status="invalidated")


@router.delete(
    "/cache",
    response_model=CacheResetResponse,
    summary="Delete every cached entry",
)
async def cache_clear(store: KeyValueStore = Depends(get_store)) -> CacheResetResponse:
    removed = await ContentCache(store).force_reset()
    if removed is None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Cache was cleared moments ago; try again shortly.",
        )
    return CacheResetResponse(status="cleared", removed=removed)


@router.delete(
    "/views",
    response_model=CacheResetResponse,
    summary="Forget every recorded report view",
)
async def views_clear(store: KeyValueStore = Depends(get_store)) -> CacheResetResponse:
    removed = await ReportViewTracker(store).clear_views()
    return CacheResetResponse(status="cleared", removed=removed)


# ──────────────────────────────────────────────────────────────────────────────
# View / unlock ledgers
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{quiz_attempt_id}/access",
    response_model=ReportAccessResponse,
    summary="Whether a report was viewed or unlocked",
)
async def report_access(
    quiz_attempt_id: str,
    user_id: Optional[str] = Query(None),
    store: KeyValueStore = Depends(get_store),
) -> ReportAccessResponse:
    tracker = ReportViewTracker(store)
    unlocked = await tracker.has_unlocked(quiz_attempt_id, user_id) if user_id else None
    return ReportAccessResponse(
        quiz_attempt_id=quiz_attempt_id,
        viewed=await tracker.has_viewed(quiz_attempt_id),
        unlocked=unlocked,
    )


@router.post(
    "/{quiz_attempt_id}/unlock",
    response_model=ReportAccessResponse,
    summary="Unlock a report for a user",
)
async def unlock_report(
    quiz_attempt_id: str,
    body: ReportUnlockRequest,
    store: KeyValueStore = Depends(get_store),
) -> ReportAccessResponse:
    tracker = ReportViewTracker(store)
    await tracker.mark_unlocked(quiz_attempt_id, body.user_id)
    return ReportAccessResponse(
        quiz_attempt_id=quiz_attempt_id,
        viewed=await tracker.has_viewed(quiz_attempt_id),
        unlocked=True,
    )
