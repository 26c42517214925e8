from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional

class QuizAnswers(BaseModel):
    """Immutable snapshot of a completed quiz.

    Every field is optional; an unanswered question simply contributes
    nothing downstream.  The quiz UI posts camelCase keys, which are
    accepted alongside the snake_case field names.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    # Round 1: motivation & vision
    main_motivation: Optional[str] = None
    first_income_timeline: Optional[str] = None
    success_income_goal: Optional[float] = None
    upfront_investment: Optional[float] = None
    passion_identity_alignment: Optional[int] = None
    business_exit_plan: Optional[str] = None
    business_growth_size: Optional[str] = None
    passive_income_importance: Optional[int] = None

    # Round 2: time, effort & learning
    weekly_time_commitment: Optional[float] = None
    long_term_consistency: Optional[int] = None
    trial_error_comfort: Optional[int] = None
    learning_preference: Optional[str] = None
    systems_routines_enjoyment: Optional[int] = None
    discouragement_resilience: Optional[int] = None
    tool_learning_willingness: Optional[str] = None
    organization_level: Optional[int] = None
    self_motivation_level: Optional[int] = None
    uncertainty_handling: Optional[int] = None
    repetitive_tasks_feeling: Optional[str] = None
    work_collaboration_preference: Optional[str] = None

    # Round 3: personality & preferences
    brand_face_comfort: Optional[int] = None
    competitiveness_level: Optional[int] = None
    creative_work_enjoyment: Optional[int] = None
    direct_communication_enjoyment: Optional[int] = None
    work_structure_preference: Optional[str] = None

    # Round 4: tools & environment
    tech_skills_rating: Optional[int] = None
    workspace_availability: Optional[str] = None
    support_system_strength: Optional[str] = None
    internet_device_reliability: Optional[int] = None
    familiar_tools: tuple[str, ...] = ()

    # Round 5: strategy & decision-making
    decision_making_style: Optional[str] = None
    risk_comfort_level: Optional[int] = None
    feedback_rejection_response: Optional[int] = None
    path_preference: Optional[str] = None
    control_importance: Optional[int] = None

    # Round 6: business model fit filters
    online_presence_comfort: Optional[str] = None
    client_calls_comfort: Optional[str] = None
    physical_shipping_openness: Optional[str] = None
    work_style_preference: Optional[str] = None
    social_media_interest: Optional[int] = None
    ecosystem_participation: Optional[str] = None
    existing_audience: Optional[str] = None
    promoting_others_openness: Optional[str] = None
    teach_vs_solve_preference: Optional[str] = None
    meaningful_contribution_importance: Optional[int] = None

class TraitScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    social_comfort: float
    discipline: float
    risk_tolerance: float
    tech_comfort: float
    structure_preference: float
    motivation: float
    feedback_resilience: float
    creativity: float
    confidence: float
    adaptability: float
    focus_preference: float
    resilience: float

class TraitDescription(BaseModel):
    trait: str
    score: float
    level: str  # low/medium/high
    description: str

class TraitAssessmentResponse(BaseModel):
    scores: TraitScores
    descriptions: list[TraitDescription]
