"""
BizModelAI — Deterministic fallback narrative content.

Every narrative field the generation pipeline produces has a quiz-derived
substitute here with the same shape, used whenever a generation call fails
or times out.  Thresholds read the raw 1-5 answers; an unanswered question
counts as below threshold.
"""

from __future__ import annotations

from app.schemas.quiz import QuizAnswers
from app.schemas.report import ModelScore, NarrativeAnalysis, NarrativeInsights

CHARACTERISTIC_COUNT = 6

PREVIEW_INSIGHTS = (
    "Your profile shows promising alignment with entrepreneurial success. "
    "Your traits suggest you're capable of building something meaningful. "
    "The combination of your skills, motivation, and available resources "
    "creates a strong foundation for your chosen business path."
)

PREVIEW_KEY_INSIGHTS: tuple[str, ...] = (
    "You value structure and clarity in your work.",
    "You're willing to commit time and energy to your goals.",
    "You show high potential for creative problem solving.",
    "Your comfort with risk gives you an advantage in uncertain environments.",
)

PREVIEW_SUCCESS_PREDICTORS: tuple[str, ...] = (
    "Strong self-motivation and long-term thinking",
    "Ability to learn new tools and systems quickly",
    "Clear sense of purpose and mission alignment",
    "Sustainable time commitment and consistency",
)

ANALYSIS_KEY_INSIGHTS: tuple[str, ...] = (
    "Your risk tolerance perfectly matches the requirements of this business model",
    "Time commitment aligns with realistic income expectations and growth timeline",
    "Technical skills provide a solid foundation for the tools and systems needed",
    "Communication preferences match the customer interaction requirements",
)

ANALYSIS_RECOMMENDATIONS: tuple[str, ...] = (
    "Start with proven tools and systems to minimize learning curve",
    "Focus on systematic execution rather than trying to reinvent approaches",
    "Leverage your natural strengths while gradually building new skills",
)

ANALYSIS_RISK_FACTORS: tuple[str, ...] = (
    "Initial learning curve may require patience and persistence",
    "Income may be inconsistent in the first few months",
    "Success requires consistent daily action and follow-through",
)

ANALYSIS_SUCCESS_PREDICTORS: tuple[str, ...] = (
    "Strong self-motivation indicates high likelihood of follow-through",
    "Analytical approach will help optimize strategies and tactics",
    "Realistic expectations set foundation for sustainable growth",
)

FIT_STRENGTH_BY_RANK: tuple[str, ...] = ("perfect", "excellent", "good")


def _at_least(value: float | None, threshold: float) -> bool:
    return value is not None and value >= threshold


def _at_most(value: float | None, threshold: float) -> bool:
    return value is not None and value <= threshold


def format_hours(answers: QuizAnswers) -> str:
    hours = answers.weekly_time_commitment
    if hours is None:
        return "flexible"
    return str(int(hours)) if float(hours).is_integer() else str(hours)


def characteristics(answers: QuizAnswers) -> list[str]:
    a = answers
    return [
        "Highly self-motivated" if _at_least(a.self_motivation_level, 4) else "Moderately self-motivated",
        "High risk tolerance" if _at_least(a.risk_comfort_level, 4) else "Moderate risk tolerance",
        "Strong tech skills" if _at_least(a.tech_skills_rating, 4) else "Adequate tech skills",
        "Excellent communicator" if _at_least(a.direct_communication_enjoyment, 4) else "Good communicator",
        "Highly organized planner" if _at_least(a.organization_level, 4) else "Flexible approach to planning",
        "Creative problem solver" if _at_least(a.creative_work_enjoyment, 4) else "Analytical approach to challenges",
    ]


def fit_descriptions(answers: QuizAnswers, top: list[ModelScore]) -> dict[str, str]:
    """Fit explanations for the best-ranked models, keyed by model id."""
    a = answers
    motivation = "high self-motivation" if _at_least(a.self_motivation_level, 4) else "self-driven nature"
    tech = "strong" if _at_least(a.tech_skills_rating, 4) else "adequate"
    risk = "high" if _at_least(a.risk_comfort_level, 4) else "moderate"
    hours = format_hours(a)

    descriptions: dict[str, str] = {}
    for index, model in enumerate(top):
        strength = FIT_STRENGTH_BY_RANK[min(index, len(FIT_STRENGTH_BY_RANK) - 1)]
        descriptions[model.model_id] = (
            f"This business model aligns well with your {motivation} and "
            f"{hours} hours/week availability. Your {tech} technical skills and "
            f"{risk} risk tolerance make this a {strength} match for your "
            f"entrepreneurial journey."
        )
    return descriptions


def avoid_descriptions(answers: QuizAnswers, bottom: list[ModelScore]) -> dict[str, str]:
    """Avoid explanations for the worst-ranked models (worst first)."""
    risk = "lower risk tolerance" if _at_most(answers.risk_comfort_level, 2) else "risk preferences"
    hours = format_hours(answers)

    return {
        model.model_id: (
            f"This business model scored {model.percentage}% for your profile, "
            f"indicating significant misalignment with your current goals, skills, "
            f"and preferences. Based on your quiz responses, you would likely face "
            f"substantial challenges in this field that could impact your success. "
            f"Consider focusing on higher-scoring business models that better match "
            f"your natural strengths and current situation. Your {risk} and {hours} "
            f"hours/week availability suggest other business models would be more "
            f"suitable for your entrepreneurial journey."
        )
        for model in bottom
    }


def preview_insights() -> NarrativeInsights:
    return NarrativeInsights(
        preview_insights=PREVIEW_INSIGHTS,
        key_insights=list(PREVIEW_KEY_INSIGHTS),
        success_predictors=list(PREVIEW_SUCCESS_PREDICTORS),
    )


def analysis_text(top_model: ModelScore | None) -> str:
    name = top_model.display_name if top_model else "your top business model"
    score = top_model.percentage if top_model else 75
    return (
        f"Your assessment reveals a remarkable alignment between your personal "
        f"profile and {name}. With a {score}% compatibility score, this represents "
        f"more than just a good fit, it's potentially your ideal entrepreneurial "
        f"path. Your unique combination of risk tolerance, time availability, and "
        f"skill set creates natural advantages in this field. The way you approach "
        f"decisions, handle challenges, and prefer to work all point toward success "
        f"in this specific business model. Your timeline expectations are realistic "
        f"given your commitment level, and your technical comfort provides the "
        f"foundation needed for the tools and systems required. Most importantly, "
        f"this path aligns with your core motivations and long-term vision, creating "
        f"the sustainable motivation needed for entrepreneurial success."
    )


def detailed_analysis(top_model: ModelScore | None) -> NarrativeAnalysis:
    return NarrativeAnalysis(
        full_analysis=analysis_text(top_model),
        key_insights=list(ANALYSIS_KEY_INSIGHTS),
        personalized_recommendations=list(ANALYSIS_RECOMMENDATIONS),
        risk_factors=list(ANALYSIS_RISK_FACTORS),
        success_predictors=list(ANALYSIS_SUCCESS_PREDICTORS),
    )
