from pydantic import BaseModel, Field
from typing import Optional

from app.schemas.quiz import QuizAnswers, TraitScores

class ModelScore(BaseModel):
    model_id: str
    display_name: str
    category: str  # Best Fit/Strong Fit/Possible Fit/Poor Fit
    percentage: int = Field(ge=0, le=100)

class ModelRankingResponse(BaseModel):
    ranked: list[ModelScore]
    top: list[ModelScore]
    bottom: list[ModelScore]  # worst first

class NarrativeInsights(BaseModel):
    preview_insights: str
    key_insights: list[str]
    success_predictors: list[str]

class NarrativeAnalysis(BaseModel):
    full_analysis: str
    key_insights: list[str]
    personalized_recommendations: list[str]
    risk_factors: list[str]
    success_predictors: list[str]

class CachedPayload(BaseModel):
    insights: NarrativeInsights
    analysis: Optional[NarrativeAnalysis] = None
    top_model: Optional[ModelScore] = None

class CacheEntry(BaseModel):
    key: str
    version: str
    created_at: float  # unix seconds
    payload: CachedPayload

class CacheStatus(BaseModel):
    count: int
    total_size_bytes: int
    oldest_timestamp: Optional[float] = None

class StageRecord(BaseModel):
    name: str
    status: str = "pending"  # pending/active/completed/failed
    used_fallback: bool = False
    error: Optional[str] = None

class ProgressEvent(BaseModel):
    stage_index: int
    stage: str
    percent: int = Field(ge=0, le=100)

class GenerationResult(BaseModel):
    insights: NarrativeInsights
    analysis: NarrativeAnalysis
    top_model: Optional[ModelScore] = None
    trait_scores: TraitScores
    ranked_models: list[ModelScore]
    characteristics: list[str]
    fit_descriptions: dict[str, str]  # model_id -> text
    avoid_descriptions: dict[str, str]  # model_id -> text, worst first
    stages: list[StageRecord]
    from_cache: bool = False

    @property
    def fallback_stages(self) -> list[str]:
        return [s.name for s in self.stages if s.used_fallback]

class GenerateReportRequest(BaseModel):
    answers: QuizAnswers
    quiz_attempt_id: Optional[str] = None
    user_email: Optional[str] = None

class CacheResetResponse(BaseModel):
    status: str
    removed: int = 0

class ReportUnlockRequest(BaseModel):
    user_id: str = Field(min_length=1)

class ReportAccessResponse(BaseModel):
    quiz_attempt_id: str
    viewed: bool
    unlocked: Optional[bool] = None
