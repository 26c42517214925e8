"""
BizModelAI — Assessment API

Pure scoring endpoints; no external calls, no shared state:
  - POST /traits  quiz answers -> normalised trait scores with descriptions
  - POST /models  quiz answers -> ranked business models with best/worst views
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Query

from app.schemas.quiz import QuizAnswers, TraitAssessmentResponse, TraitDescription
from app.schemas.report import ModelRankingResponse
from app.services.ranking_service import RankingService, bottom_matches, top_matches
from app.services.trait_service import TraitService

logger = structlog.get_logger("bizmodelai.api.assessment")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_trait_service: TraitService | None = None
_ranking_service: RankingService | None = None


def _get_trait_service() -> TraitService:
    global _trait_service
    if _trait_service is None:
        _trait_service = TraitService()
    return _trait_service


def _get_ranking_service() -> RankingService:
    global _ranking_service
    if _ranking_service is None:
        _ranking_service = RankingService()
    return _ranking_service


# ──────────────────────────────────────────────────────────────────────────────
# POST /traits
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/traits",
    response_model=TraitAssessmentResponse,
    summary="Score the twelve entrepreneurial traits",
)
async def assess_traits(answers: QuizAnswers) -> TraitAssessmentResponse:
    service = _get_trait_service()
    scores = service.compute_trait_scores(answers)
    descriptions = [TraitDescription(**item) for item in service.describe(scores)]
    return TraitAssessmentResponse(scores=scores, descriptions=descriptions)


# ──────────────────────────────────────────────────────────────────────────────
# POST /models
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/models",
    response_model=ModelRankingResponse,
    summary="Rank business models by fit",
)
async def rank_business_models(
    answers: QuizAnswers,
    top: int = Query(3, ge=0, le=50),
    bottom: int = Query(3, ge=0, le=50),
) -> ModelRankingResponse:
    """Return every model best first, plus the ``top`` best and the
    ``bottom`` worst (worst first)."""
    ranked = _get_ranking_service().rank_models(answers)
    logger.info("assessment_models_ranked", count=len(ranked))
    return ModelRankingResponse(
        ranked=ranked,
        top=top_matches(ranked, top),
        bottom=bottom_matches(ranked, bottom),
    )
