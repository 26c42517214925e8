"""
BizModelAI — Narrative content generators.

Builds the prompts for every AI-written section of a report, sends them
through the text-generation client and validates the JSON that comes
back.  Each ``generate_*`` method raises on any failure (transport error,
unparsable JSON, wrong shape); substituting fallback content is the
caller's decision.

JSON parsing pipeline:
  1. Direct ``json.loads``
  2. Markdown code-fence extraction
  3. Outermost brace slice
  4. ``json_repair`` as a last resort
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from json_repair import repair_json

from app.schemas.quiz import QuizAnswers
from app.schemas.report import ModelScore, NarrativeAnalysis, NarrativeInsights

logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

JSON_OBJECT = {"type": "json_object"}

AVOID_SYSTEM_MESSAGE = (
    "You are an expert business consultant specializing in entrepreneurial "
    "personality matching. Generate personalized, specific explanations for "
    "why certain business models don't fit individual users based on their "
    "quiz responses. Be honest but constructive, helping users understand "
    "misalignments. Respond with JSON only."
)


# ──────────────────────────────────────────────────────────────────────────────
# Profile helpers
# ──────────────────────────────────────────────────────────────────────────────

def rating_description(rating: float | None) -> str:
    if rating is None:
        return "Not answered"
    if rating >= 4.5:
        return "Very High"
    if rating >= 4:
        return "High"
    if rating >= 3:
        return "Moderate"
    if rating >= 2:
        return "Low"
    return "Very Low"


def income_goal_range(value: float | None) -> str:
    if value is None or value <= 500:
        return "Less than $500/month"
    if value <= 1250:
        return "$500–$2,000/month"
    if value <= 3500:
        return "$2,000–$5,000/month"
    return "$5,000+/month"


def time_commitment_range(value: float | None) -> str:
    if value is None or value <= 3:
        return "Less than 5 hours/week"
    if value <= 7:
        return "5–10 hours/week"
    if value <= 17:
        return "10–25 hours/week"
    return "25+ hours/week"


def investment_range(value: float | None) -> str:
    if value is None or value <= 0:
        return "$0 (bootstrap only)"
    if value <= 125:
        return "Under $250"
    if value <= 625:
        return "$250–$1,000"
    return "$1,000+"


def analysis_category(percentage: int) -> str:
    if percentage >= 70:
        return "Best Fit"
    if percentage >= 50:
        return "Strong Fit"
    if percentage >= 30:
        return "Possible Fit"
    return "Poor Fit"


def build_user_profile(answers: QuizAnswers) -> str:
    """Compact JSON summary of the quiz used as prompt context."""
    a = answers
    motivations = []
    if a.passion_identity_alignment is not None and a.passion_identity_alignment >= 4:
        motivations.append("purpose")
    if a.meaningful_contribution_importance is not None and a.meaningful_contribution_importance >= 4:
        motivations.append("impact")
    if a.success_income_goal is not None and a.success_income_goal >= 5000:
        motivations.append("financial")
    if not motivations:
        motivations.append("growth")

    profile = {
        "mainMotivation": a.main_motivation,
        "ratings": {
            "selfMotivation": rating_description(a.self_motivation_level),
            "riskComfort": rating_description(a.risk_comfort_level),
            "techSkills": rating_description(a.tech_skills_rating),
            "directCommunication": rating_description(a.direct_communication_enjoyment),
            "creativeWork": rating_description(a.creative_work_enjoyment),
            "organization": rating_description(a.organization_level),
            "longTermConsistency": rating_description(a.long_term_consistency),
            "brandFaceComfort": rating_description(a.brand_face_comfort),
        },
        "workPreferences": {
            "timeAvailability": time_commitment_range(a.weekly_time_commitment),
            "learningStyle": a.learning_preference,
            "structure": a.work_structure_preference,
            "collaboration": a.work_collaboration_preference,
            "decisionStyle": a.decision_making_style,
            "incomeGoal": income_goal_range(a.success_income_goal),
        },
        "motivations": motivations,
        "investment": investment_range(a.upfront_investment),
        "incomeTimeline": a.first_income_timeline,
        "familiarTools": list(a.familiar_tools),
    }
    return json.dumps(profile)


# ──────────────────────────────────────────────────────────────────────────────
# Response parsing
# ──────────────────────────────────────────────────────────────────────────────

def parse_json_object(text: str) -> dict:
    """Parse a JSON object out of a model response.

    Raises
    ------
    ValueError
        If no strategy yields a JSON object.
    """
    if not text or not text.strip():
        raise ValueError("Empty response text, cannot parse JSON")

    cleaned = text.strip()

    try:
        result = json.loads(cleaned)
        if isinstance(result, dict):
            return result
    except (json.JSONDecodeError, TypeError):
        pass

    fence = _CODE_FENCE.search(cleaned)
    if fence:
        try:
            result = json.loads(fence.group(1).strip())
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, TypeError):
            pass

    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")
    candidate = cleaned
    if first_brace >= 0 and last_brace > first_brace:
        candidate = cleaned[first_brace : last_brace + 1]
        try:
            result = json.loads(candidate)
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, TypeError):
            pass

    try:
        result = json.loads(repair_json(candidate))
        if isinstance(result, dict):
            logger.info("json_parsed_via_repair", original_preview=cleaned[:80])
            return result
    except Exception as exc:
        logger.debug("json_repair_failed", error=str(exc))

    raise ValueError(f"Failed to parse JSON from model response. Preview: {cleaned[:200]}")


def validate_list(values: Any, expected: int, fallback: str) -> list[str]:
    """Coerce ``values`` to exactly ``expected`` non-empty strings, padding
    with ``fallback``."""
    items = [str(v).strip() for v in values if str(v).strip()] if isinstance(values, list) else []
    items = items[:expected]
    while len(items) < expected:
        items.append(fallback)
    return items


def _descriptions_by_id(parsed: dict, wanted: list[ModelScore]) -> dict[str, str]:
    wanted_ids = {m.model_id for m in wanted}
    names = {m.display_name.lower(): m.model_id for m in wanted}
    result: dict[str, str] = {}
    for item in parsed.get("descriptions") or []:
        if not isinstance(item, dict):
            continue
        business_id = str(item.get("businessId", ""))
        text = str(item.get("description", "")).strip()
        model_id = business_id if business_id in wanted_ids else names.get(business_id.lower())
        if model_id and text:
            result[model_id] = text
    return result


class NarrativeService:
    """Prompt construction and response validation for report narratives."""

    CHARACTERISTIC_COUNT = 6
    PREVIEW_LIST_SIZE = 4

    def __init__(self, text_generator: Any | None = None) -> None:
        """
        Parameters
        ----------
        text_generator:
            Object exposing ``async generate(prompt, max_tokens,
            temperature, response_format=None, system_message=None)``
            returning ``{"content": str}``.  Defaults to ``GeminiService``.
        """
        if text_generator is None:
            from app.services.gemini_service import GeminiService

            text_generator = GeminiService()
        self._generator = text_generator

    async def _generate_json(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float = 0.7,
        system_message: str | None = None,
    ) -> dict:
        response = await self._generator.generate(
            prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format=JSON_OBJECT,
            system_message=system_message,
        )
        content = response.get("content") if isinstance(response, dict) else None
        if not content:
            raise ValueError("No content in generation response")
        return parse_json_object(content)

    # ══════════════════════════════════════════════════════════════════
    # Generators
    # ══════════════════════════════════════════════════════════════════

    async def generate_preview_insights(
        self, answers: QuizAnswers, top_model: ModelScore | None
    ) -> NarrativeInsights:
        top_line = (
            f"Top Match: {top_model.display_name} ({top_model.percentage}%)"
            if top_model
            else "Top Match: none"
        )
        prompt = (
            "Generate results preview for user:\n\n"
            f"{build_user_profile(answers)}\n\n"
            f"{top_line}\n\n"
            "Return JSON:\n"
            "{\n"
            '  "previewInsights": "3 paragraphs on entrepreneurial potential and alignment",\n'
            '  "keyInsights": ["4 themes from quiz data"],\n'
            '  "successPredictors": ["4 success predictors based on profile"]\n'
            "}\n\n"
            "Rules: Use only provided data, no invented details."
        )
        parsed = await self._generate_json(prompt, max_tokens=600)

        preview = str(parsed.get("previewInsights") or "").strip()
        if not preview:
            raise ValueError("Preview insights missing from response")

        return NarrativeInsights(
            preview_insights=preview,
            key_insights=validate_list(
                parsed.get("keyInsights"),
                self.PREVIEW_LIST_SIZE,
                "You bring strong personal alignment to business.",
            ),
            success_predictors=validate_list(
                parsed.get("successPredictors"),
                self.PREVIEW_LIST_SIZE,
                "Your traits support long-term success.",
            ),
        )

    async def generate_characteristics(self, answers: QuizAnswers) -> list[str]:
        a = answers
        prompt = (
            "Based on this quiz data, generate exactly 6 short positive characteristics "
            "that reflect the user's entrepreneurial strengths. Each should be 3-5 words "
            "maximum and highlight unique aspects of their entrepreneurial potential.\n\n"
            "Quiz Data:\n"
            f"- Self-motivation level: {a.self_motivation_level}/5\n"
            f"- Risk comfort level: {a.risk_comfort_level}/5\n"
            f"- Tech skills rating: {a.tech_skills_rating}/5\n"
            f"- Direct communication enjoyment: {a.direct_communication_enjoyment}/5\n"
            f"- Learning preference: {a.learning_preference}\n"
            f"- Organization level: {a.organization_level}/5\n"
            f"- Creative work enjoyment: {a.creative_work_enjoyment}/5\n"
            f"- Work collaboration preference: {a.work_collaboration_preference}\n"
            f"- Decision making style: {a.decision_making_style}\n"
            f"- Work structure preference: {a.work_structure_preference}\n"
            f"- Long-term consistency: {a.long_term_consistency}/5\n"
            f"- Uncertainty handling: {a.uncertainty_handling}/5\n"
            f"- Tools familiar with: {', '.join(a.familiar_tools)}\n"
            f"- Main motivation: {a.main_motivation}\n"
            f"- Weekly time commitment: {a.weekly_time_commitment}\n"
            f"- Income goal: {a.success_income_goal}\n\n"
            "Return a JSON object with this exact structure:\n"
            '{"characteristics": ["characteristic 1", "characteristic 2", '
            '"characteristic 3", "characteristic 4", "characteristic 5", '
            '"characteristic 6"]}'
        )
        parsed = await self._generate_json(prompt, max_tokens=200)

        items = parsed.get("characteristics")
        if not isinstance(items, list) or len(items) != self.CHARACTERISTIC_COUNT:
            count = len(items) if isinstance(items, list) else "none"
            raise ValueError(
                f"Invalid response format, expected {self.CHARACTERISTIC_COUNT} "
                f"characteristics, got: {count}"
            )
        cleaned = [str(item).strip() for item in items]
        if not all(cleaned):
            raise ValueError("Empty characteristic in response")
        return cleaned

    async def generate_fit_descriptions(
        self, answers: QuizAnswers, top: list[ModelScore]
    ) -> dict[str, str]:
        a = answers
        models = "\n".join(
            f"- {m.display_name} [id: {m.model_id}] ({m.percentage}% fit)" for m in top
        )
        prompt = (
            "Based on the quiz data and business model matches, generate personalized "
            "explanations for why each business model fits this user. Focus on specific "
            "aspects of their profile that align with each model.\n\n"
            "Quiz Data Summary:\n"
            f"- Self-motivation: {a.self_motivation_level}/5\n"
            f"- Risk tolerance: {a.risk_comfort_level}/5\n"
            f"- Tech skills: {a.tech_skills_rating}/5\n"
            f"- Time commitment: {time_commitment_range(a.weekly_time_commitment)}\n"
            f"- Income goal: {income_goal_range(a.success_income_goal)}\n"
            f"- Learning preference: {a.learning_preference}\n"
            f"- Work collaboration: {a.work_collaboration_preference}\n\n"
            f"Business Models:\n{models}\n\n"
            "For each business model, write a 2-3 sentence explanation of why it fits "
            "this user's profile. Focus on specific strengths and alignments.\n\n"
            "Return JSON format:\n"
            '{"descriptions": [{"businessId": "business-id", "description": "explanation here"}]}'
        )
        parsed = await self._generate_json(prompt, max_tokens=800)

        descriptions = _descriptions_by_id(parsed, top)
        if top and not descriptions:
            raise ValueError("No usable fit descriptions in response")
        return descriptions

    async def generate_avoid_descriptions(
        self, answers: QuizAnswers, bottom: list[ModelScore]
    ) -> dict[str, str]:
        a = answers
        models = "\n".join(
            f"- {m.display_name} [id: {m.model_id}] ({m.percentage}% fit)" for m in bottom
        )
        prompt = (
            "Based on this user's quiz responses, explain for each of their lowest "
            "scoring business matches why it doesn't fit their current profile.\n\n"
            f"User Profile:\n{build_user_profile(a)}\n\n"
            f"Business Matches (worst first):\n{models}\n\n"
            "For each model write one cohesive paragraph of at least 6 sentences covering "
            "which traits, goals or preferences conflict with it, the challenges they "
            "would likely face, and what would need to change before it could become "
            "viable. Use ONLY the data provided; do not invent numbers.\n\n"
            "Return JSON format:\n"
            '{"descriptions": [{"businessId": "business-id", "description": "explanation here"}]}'
        )
        parsed = await self._generate_json(
            prompt, max_tokens=1500, system_message=AVOID_SYSTEM_MESSAGE
        )

        descriptions = _descriptions_by_id(parsed, bottom)
        if bottom and not descriptions:
            raise ValueError("No usable avoid descriptions in response")
        return descriptions

    async def generate_detailed_analysis(
        self, answers: QuizAnswers, top_model: ModelScore
    ) -> NarrativeAnalysis:
        category = analysis_category(top_model.percentage)
        prompt = (
            f"User Profile:\n{build_user_profile(answers)}\n\n"
            f"Business Model: {top_model.display_name} "
            f"({top_model.percentage}% fit - {category})\n\n"
            f"Write a professional analysis of how well {top_model.display_name} "
            f"suits this user, consistent with the '{category}' assessment. Speak "
            "directly to the user in second person, 250-350 words, no markdown. Use "
            "ONLY the data provided; reference ranges, never invented numbers.\n\n"
            "Return JSON:\n"
            "{\n"
            '  "fullAnalysis": "the analysis text",\n'
            '  "keyInsights": ["4 insights"],\n'
            '  "personalizedRecommendations": ["3 recommendations"],\n'
            '  "riskFactors": ["3 risk factors"],\n'
            '  "successPredictors": ["3 success predictors"]\n'
            "}"
        )
        parsed = await self._generate_json(prompt, max_tokens=1200)

        full_analysis = str(parsed.get("fullAnalysis") or "").strip()
        if not full_analysis:
            raise ValueError("Full analysis missing from response")

        return NarrativeAnalysis(
            full_analysis=full_analysis,
            key_insights=validate_list(
                parsed.get("keyInsights"), 4,
                "Your profile shows meaningful alignment with this business model",
            ),
            personalized_recommendations=validate_list(
                parsed.get("personalizedRecommendations"), 3,
                "Leverage your natural strengths while gradually building new skills",
            ),
            risk_factors=validate_list(
                parsed.get("riskFactors"), 3,
                "Initial learning curve may require patience and persistence",
            ),
            success_predictors=validate_list(
                parsed.get("successPredictors"), 3,
                "Realistic expectations set foundation for sustainable growth",
            ),
        )
