"""
BizModelAI — Business model fit ranking engine.

Projects quiz answers onto 26 weighted fit dimensions (each on a 0-1 scale),
compares that user profile with the ideal profile of every configured
business model and produces a ranked list of fit percentages.

Per-dimension similarity follows a piecewise curve over the absolute
difference ``d = |user - ideal|``:

    d <= 0.05   0.98 .. 1.00
    d <= 0.15   0.90 .. 0.98
    d <= 0.25   0.75 .. 0.90
    d <= 0.35   0.55 .. 0.75
    d <= 0.45   0.30 .. 0.55
    d <= 0.55   0.10 .. 0.30
    otherwise   0.00 .. 0.10

The weighted mean similarity (0-100) is rescaled to 40-96 and rounded.
Models are sorted by percentage, highest first; ties keep declaration order.
"""

from __future__ import annotations

from typing import Any

import structlog

from app.schemas.quiz import QuizAnswers
from app.schemas.report import ModelScore

logger = structlog.get_logger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Dimension weights and ideal model profiles
# ──────────────────────────────────────────────────────────────────────────────

DIMENSION_WEIGHTS: dict[str, float] = {
    # Core business traits
    "income_ambition": 1.5,
    "speed_to_income": 1.3,
    "upfront_investment_tolerance": 1.0,
    "passive_income_preference": 1.4,
    "business_exit_strategy": 0.5,
    "meaningful_contribution_importance": 1.0,
    # Work style & resilience
    "passion_alignment": 1.3,
    "time_commitment": 1.2,
    "consistency_and_follow_through": 1.1,
    "risk_tolerance": 1.4,
    "systems_thinking": 1.0,
    "tool_learning": 0.9,
    "autonomy_control": 1.1,
    "structure_preference": 0.8,
    "repetition_tolerance": 0.7,
    "adaptability_to_feedback": 0.8,
    "originality_preference": 0.9,
    # Interaction & marketing style
    "sales_confidence": 1.1,
    "creative_interest": 1.0,
    "social_media_comfort": 1.0,
    "product_vs_service": 0.9,
    "teaching_vs_solving": 0.8,
    "platform_ecosystem_comfort": 0.7,
    "collaboration_preference": 0.8,
    "promote_others_willingness": 0.5,
    "technical_comfort": 1.0,
}

DIMENSIONS: tuple[str, ...] = tuple(DIMENSION_WEIGHTS)

# Ideal values, one per dimension in DIMENSIONS order.
_IDEAL_VALUES: dict[str, tuple[float, ...]] = {
    "freelancing": (0.4, 0.9, 0.8, 0.1, 0.2, 0.7, 0.7, 0.7, 0.8, 0.6, 0.5, 0.7, 1.0, 0.6, 0.5, 0.7, 0.7, 0.8, 0.7, 0.4, 0.1, 0.6, 0.4, 0.8, 0.3, 0.6),
    "online-coaching": (0.5, 0.7, 0.9, 0.2, 0.1, 0.9, 0.8, 0.6, 0.7, 0.5, 0.6, 0.6, 0.8, 0.7, 0.7, 0.8, 0.4, 0.9, 0.4, 0.9, 0.0, 1.0, 0.8, 0.6, 0.1, 0.5),
    "e-commerce": (0.9, 0.4, 0.6, 0.6, 0.9, 0.5, 0.8, 0.8, 0.9, 0.8, 0.8, 0.8, 0.9, 0.6, 0.7, 0.7, 0.8, 0.6, 0.9, 0.7, 0.9, 0.2, 0.8, 0.7, 0.4, 0.7),
    "content-creation": (0.8, 0.6, 0.8, 0.5, 0.7, 0.9, 0.9, 0.8, 0.9, 0.7, 0.6, 0.7, 0.9, 0.4, 0.6, 0.8, 0.9, 0.7, 1.0, 1.0, 0.7, 0.4, 0.5, 0.8, 0.7, 0.7),
    "youtube-automation": (0.8, 0.5, 0.7, 0.7, 0.8, 0.3, 0.7, 0.8, 0.8, 0.6, 0.7, 0.8, 0.8, 0.5, 0.7, 0.6, 0.7, 0.4, 0.9, 0.4, 0.8, 0.3, 0.7, 0.9, 0.6, 0.8),
    "local-service": (0.6, 0.6, 0.5, 0.4, 0.6, 0.5, 0.5, 0.7, 0.7, 0.5, 0.6, 0.4, 0.8, 0.7, 0.6, 0.7, 0.3, 0.8, 0.4, 0.8, 0.3, 0.2, 0.3, 0.7, 0.2, 0.3),
    "high-ticket-sales": (0.7, 0.8, 0.8, 0.3, 0.4, 0.6, 0.6, 0.8, 0.9, 0.7, 0.7, 0.5, 0.9, 0.8, 0.8, 0.9, 0.5, 1.0, 0.6, 1.0, 0.1, 0.3, 0.5, 0.8, 0.4, 0.4),
    "saas-development": (1.0, 0.2, 0.4, 0.8, 1.0, 0.9, 0.9, 0.9, 1.0, 0.9, 1.0, 0.9, 1.0, 0.7, 0.7, 0.9, 1.0, 0.3, 0.8, 0.3, 1.0, 0.1, 0.9, 0.8, 0.2, 1.0),
    "social-media-agency": (0.8, 0.6, 0.7, 0.4, 0.7, 0.7, 0.7, 0.7, 0.8, 0.6, 0.7, 0.8, 0.9, 0.6, 0.6, 0.8, 0.7, 0.9, 0.8, 0.9, 0.2, 0.3, 0.6, 0.6, 0.5, 0.8),
    "ai-marketing-agency": (0.9, 0.5, 0.7, 0.6, 0.8, 0.7, 0.7, 0.8, 0.9, 0.7, 0.8, 0.9, 1.0, 0.7, 0.6, 0.8, 0.7, 0.7, 0.7, 0.7, 0.3, 0.3, 0.7, 0.7, 0.6, 1.0),
    "digital-services": (0.8, 0.7, 0.8, 0.3, 0.7, 0.6, 0.6, 0.7, 0.8, 0.6, 0.8, 0.7, 1.0, 0.7, 0.6, 0.8, 0.6, 0.6, 0.6, 0.6, 0.2, 0.2, 0.5, 0.6, 0.4, 0.7),
    "investing-trading": (0.7, 0.9, 0.1, 0.8, 0.2, 0.4, 0.4, 0.9, 0.6, 1.0, 0.6, 0.8, 1.0, 0.4, 0.8, 0.7, 0.2, 0.2, 0.2, 0.2, 1.0, 0.0, 0.6, 0.1, 0.0, 0.7),
    "online-reselling": (0.4, 0.8, 0.3, 0.3, 0.5, 0.5, 0.5, 0.7, 0.7, 0.4, 0.5, 0.4, 0.9, 0.6, 0.8, 0.6, 0.5, 0.3, 0.5, 0.3, 0.9, 0.1, 0.5, 0.9, 0.2, 0.4),
    "handmade-goods": (0.3, 0.4, 0.3, 0.2, 0.3, 1.0, 1.0, 0.6, 0.8, 0.3, 0.3, 0.3, 1.0, 0.5, 0.6, 0.5, 0.9, 0.2, 1.0, 0.2, 0.9, 0.1, 0.3, 0.9, 0.1, 0.3),
    "copywriting": (0.5, 0.6, 0.8, 0.3, 0.4, 0.8, 0.8, 0.6, 0.7, 0.5, 0.6, 0.6, 1.0, 0.7, 0.7, 0.8, 0.9, 0.4, 0.9, 0.3, 0.1, 0.2, 0.6, 1.0, 0.3, 0.5),
    "affiliate-marketing": (0.8, 0.7, 0.7, 0.7, 0.8, 0.6, 0.6, 0.7, 0.8, 0.7, 0.7, 0.8, 0.8, 0.6, 0.6, 0.7, 0.8, 0.7, 0.8, 0.7, 0.8, 0.2, 0.7, 0.9, 1.0, 0.7),
    "virtual-assistant": (0.4, 0.8, 0.9, 0.2, 0.1, 0.5, 0.5, 0.7, 0.8, 0.5, 0.7, 0.6, 0.7, 0.8, 0.8, 0.7, 0.4, 0.7, 0.4, 0.7, 0.0, 0.1, 0.4, 0.7, 0.3, 0.5),
    "e-commerce-dropshipping": (0.8, 0.6, 0.8, 0.5, 0.7, 0.6, 0.9, 0.8, 0.9, 0.7, 0.8, 0.7, 0.9, 0.6, 0.7, 0.7, 0.8, 0.6, 0.9, 0.7, 0.9, 0.2, 0.8, 0.7, 0.4, 0.7),
    "print-on-demand": (0.7, 0.6, 0.7, 0.4, 0.6, 0.5, 0.8, 0.7, 0.8, 0.6, 0.7, 0.6, 0.8, 0.7, 0.7, 0.8, 0.7, 0.6, 0.6, 0.6, 0.2, 0.2, 0.5, 0.6, 0.4, 0.7),
}

BUSINESS_MODEL_PROFILES: dict[str, dict[str, float]] = {
    model_id: dict(zip(DIMENSIONS, values))
    for model_id, values in _IDEAL_VALUES.items()
}

MODEL_DISPLAY_NAMES: dict[str, str] = {
    "freelancing": "Freelancing",
    "online-coaching": "Online Coaching",
    "e-commerce": "E-commerce Brand Building",
    "content-creation": "Content Creation / UGC",
    "youtube-automation": "YouTube Automation Channels",
    "local-service": "Local Service Arbitrage",
    "high-ticket-sales": "High-Ticket Sales / Closing",
    "saas-development": "App or SaaS Development",
    "social-media-agency": "Social Media Marketing Agency",
    "ai-marketing-agency": "AI Marketing Agency",
    "digital-services": "Digital Services Agency",
    "investing-trading": "Investing / Trading",
    "online-reselling": "Online Reselling",
    "handmade-goods": "Handmade Goods",
    "copywriting": "Copywriting / Ghostwriting",
    "affiliate-marketing": "Affiliate Marketing",
    "virtual-assistant": "Virtual Assistant",
    "e-commerce-dropshipping": "E-commerce / Dropshipping",
    "print-on-demand": "Print on Demand",
}

# ──────────────────────────────────────────────────────────────────────────────
# Answer -> dimension mappings (keys are lower-cased; quiz option ids,
# display labels and legacy values all resolve)
# ──────────────────────────────────────────────────────────────────────────────

GROWTH_AMBITION: dict[str, float] = {
    "just a side income": 0.2, "side-income": 0.2,
    "full-time income": 0.5, "full-time-income": 0.5, "full-time": 0.5,
    "multi-6-figure brand": 0.8, "multi-6-figure": 0.8, "scaling": 0.8,
    "a widely recognized company": 1.0, "widely-recognized": 1.0, "empire": 1.0,
}

FIRST_INCOME_SPEED: dict[str, float] = {
    "under 1 month": 1.0, "under-1-month": 1.0,
    "1–3 months": 0.7, "1-3-months": 0.7,
    "3–6 months": 0.4,
    "no rush": 0.1, "no-rush": 0.1,
    "1-2-weeks": 1.0,
    "1-month": 0.8,
    "3-6-months": 0.6,
    "6-12-months": 0.4,
    "1-2-years": 0.2,
    "2-plus-years": 0.0,
}

EXIT_STRATEGY: dict[str, float] = {
    "yes": 1.0, "build-and-sell": 1.0,
    "no": 0.0, "long-term": 0.0,
    "not sure": 0.5, "not-sure": 0.5, "undecided": 0.5,
}

TOOL_WILLINGNESS: dict[str, float] = {"yes": 1.0, "no": 0.0, "maybe": 0.5}

WORK_STRUCTURE: dict[str, float] = {
    "clear steps and order": 1.0, "clear-steps": 1.0,
    "some structure": 0.7, "some-structure": 0.7,
    "mostly flexible": 0.4, "mostly-flexible": 0.4,
    "total freedom": 0.1, "total-freedom": 0.1,
}

REPETITION: dict[str, float] = {
    "i avoid them": 0.0, "avoid": 0.0,
    "i tolerate them": 0.3, "tolerate": 0.3,
    "i don't mind them": 0.7, "dont-mind": 0.7, "neutral": 0.7,
    "i enjoy them": 1.0, "enjoy": 1.0,
}

ORIGINALITY: dict[str, float] = {
    "proven paths": 0.0, "proven-paths": 0.0,
    "a mix": 0.5, "mix": 0.5,
    "mostly original": 0.8, "mostly-original": 0.8,
    "i want to build something new": 1.0, "build-something-new": 1.0,
}

WORK_STYLE: dict[str, float] = {
    "create once, earn passively": 1.0, "create-once-passive": 1.0, "passive": 1.0,
    "work consistently with people": 0.0, "work-with-people": 0.0, "active": 0.0,
    "mix of both": 0.5, "mix-both": 0.5, "hybrid": 0.5,
}

TEACH_OR_SOLVE: dict[str, float] = {
    "teach": 1.0, "teaching": 1.0,
    "solve": 0.0, "solving": 0.0,
    "both": 0.5,
    "neither": 0.25,
}

PLATFORM_INTEREST: dict[str, float] = {"yes": 1.0, "no": 0.0, "maybe": 0.5}

COLLABORATION: dict[str, float] = {
    "solo only": 1.0, "solo-only": 1.0, "solo": 1.0,
    "mostly solo": 0.8, "mostly-solo": 0.8,
    "i like both": 0.5, "both": 0.5, "balanced": 0.5,
    "team-oriented": 0.2, "mostly-team": 0.2,
    "team-focused": 0.0,
}

# Category thresholds applied after the first three ("Best Fit") places.
CATEGORY_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (75, "Strong Fit"),
    (55, "Possible Fit"),
    (0, "Poor Fit"),
)
BEST_FIT_COUNT = 3


def _five_point(value: float | None, default: float = 3) -> float:
    """Map a 1-5 answer onto 0-1."""
    return ((default if value is None else value) - 1) / 4


def _lookup(mapping: dict[str, float], value: Any, default: float) -> float:
    if not isinstance(value, str):
        return default
    return mapping.get(value.strip().lower(), default)


def _is_yes(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower() == "yes"


def similarity(difference: float) -> float:
    """Piecewise similarity for an absolute 0-1 difference."""
    d = abs(difference)
    if d <= 0.05:
        return 0.98 + 0.02 * (1 - d / 0.05)
    if d <= 0.15:
        return 0.90 + 0.08 * (1 - (d - 0.05) / 0.1)
    if d <= 0.25:
        return 0.75 + 0.15 * (1 - (d - 0.15) / 0.1)
    if d <= 0.35:
        return 0.55 + 0.20 * (1 - (d - 0.25) / 0.1)
    if d <= 0.45:
        return 0.30 + 0.25 * (1 - (d - 0.35) / 0.1)
    if d <= 0.55:
        return 0.10 + 0.20 * (1 - (d - 0.45) / 0.1)
    return max(0.0, 0.10 * (1 - (d - 0.55) / 0.45))


def category_for(percentage: int, index: int) -> str:
    if index < BEST_FIT_COUNT:
        return "Best Fit"
    for threshold, label in CATEGORY_THRESHOLDS:
        if percentage >= threshold:
            return label
    return "Poor Fit"


def _js_round(value: float) -> int:
    # Half-up rounding, matching how the quiz front-end displays scores.
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def top_matches(ranked: list[ModelScore], n: int) -> list[ModelScore]:
    """First ``n`` entries of a ranked list (best first)."""
    return list(ranked[:max(n, 0)])


def bottom_matches(ranked: list[ModelScore], n: int) -> list[ModelScore]:
    """Last ``n`` entries of a ranked list, reversed so the worst comes first."""
    if n <= 0:
        return []
    return list(reversed(ranked[-n:]))


class RankingService:
    """Rank the configured business models against a quiz snapshot."""

    def __init__(
        self,
        profiles: dict[str, dict[str, float]] | None = None,
        weights: dict[str, float] | None = None,
        display_names: dict[str, str] | None = None,
    ) -> None:
        self._profiles = BUSINESS_MODEL_PROFILES if profiles is None else profiles
        self._weights = DIMENSION_WEIGHTS if weights is None else weights
        self._display_names = MODEL_DISPLAY_NAMES if display_names is None else display_names

    # ══════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════

    def normalize_responses(self, answers: QuizAnswers) -> dict[str, float]:
        """Project ``answers`` onto the 0-1 fit dimensions.

        Unanswered questions take neutral defaults; unknown option values
        fall back to the same defaults.
        """
        a = answers
        n: dict[str, float] = {}

        # ── Core business traits ──────────────────────────────────────
        income = 5000 if a.success_income_goal is None else a.success_income_goal
        scaled_income = min(max(income, 0), 15000) / 15000
        growth = _lookup(GROWTH_AMBITION, a.business_growth_size, 0.5)
        n["income_ambition"] = (scaled_income + growth) / 2

        n["speed_to_income"] = _lookup(
            FIRST_INCOME_SPEED,
            a.first_income_timeline if a.first_income_timeline is not None else "3–6 months",
            0.5,
        )

        investment = 0 if a.upfront_investment is None else a.upfront_investment
        n["upfront_investment_tolerance"] = min(max(investment, 0) / 1000, 1.0)

        n["passive_income_preference"] = _five_point(a.passive_income_importance)
        n["business_exit_strategy"] = _lookup(EXIT_STRATEGY, a.business_exit_plan, 0.5)
        n["meaningful_contribution_importance"] = _five_point(a.meaningful_contribution_importance)

        # ── Work style & resilience ───────────────────────────────────
        n["passion_alignment"] = _five_point(a.passion_identity_alignment)

        hours = 20 if a.weekly_time_commitment is None else a.weekly_time_commitment
        n["time_commitment"] = min(max(hours, 0) / 25, 1.0)

        n["consistency_and_follow_through"] = _five_point(a.long_term_consistency)
        n["risk_tolerance"] = (
            _five_point(a.trial_error_comfort)
            + _five_point(a.discouragement_resilience)
            + _five_point(a.risk_comfort_level)
        ) / 3
        n["systems_thinking"] = (
            _five_point(a.systems_routines_enjoyment) + _five_point(a.organization_level)
        ) / 2
        n["tool_learning"] = _lookup(TOOL_WILLINGNESS, a.tool_learning_willingness, 1.0)
        n["autonomy_control"] = (
            _five_point(a.self_motivation_level, default=4)
            + _five_point(a.control_importance, default=4)
        ) / 2
        n["structure_preference"] = (
            (1 - _five_point(a.uncertainty_handling))
            + _lookup(WORK_STRUCTURE, a.work_structure_preference, 0.5)
        ) / 2
        n["repetition_tolerance"] = _lookup(REPETITION, a.repetitive_tasks_feeling, 0.7)
        n["adaptability_to_feedback"] = _five_point(a.feedback_rejection_response)
        n["originality_preference"] = _lookup(ORIGINALITY, a.path_preference, 0.5)

        # ── Interaction & marketing style ─────────────────────────────
        n["sales_confidence"] = _five_point(a.direct_communication_enjoyment)
        n["creative_interest"] = _five_point(a.creative_work_enjoyment)

        online = "yes" if a.online_presence_comfort is None else a.online_presence_comfort
        n["social_media_comfort"] = (
            _five_point(a.brand_face_comfort)
            + (1.0 if _is_yes(online) else 0.0)
            + _five_point(a.social_media_interest)
        ) / 3

        n["product_vs_service"] = (
            (1.0 if _is_yes(a.physical_shipping_openness) else 0.0)
            + _lookup(WORK_STYLE, a.work_style_preference, 0.5)
        ) / 2
        n["teaching_vs_solving"] = _lookup(TEACH_OR_SOLVE, a.teach_vs_solve_preference, 0.5)
        n["platform_ecosystem_comfort"] = _lookup(PLATFORM_INTEREST, a.ecosystem_participation, 0.5)
        n["collaboration_preference"] = _lookup(COLLABORATION, a.work_collaboration_preference, 0.5)
        n["promote_others_willingness"] = 1.0 if _is_yes(a.promoting_others_openness) else 0.0
        n["technical_comfort"] = _five_point(a.tech_skills_rating)

        return n

    def calculate_model_match(
        self,
        user_profile: dict[str, float],
        model_profile: dict[str, float],
    ) -> int:
        """Weighted similarity between a user profile and one model, 40-96."""
        total_score = 0.0
        total_weight = 0.0
        for dimension, weight in self._weights.items():
            user_value = user_profile.get(dimension, 0.0)
            ideal = model_profile.get(dimension, 0.0)
            total_score += similarity(user_value - ideal) * weight
            total_weight += weight

        raw = (total_score / total_weight) * 100 if total_weight > 0 else 0.0
        return _js_round(40 + (raw / 100) * 56)

    def rank_models(self, answers: QuizAnswers) -> list[ModelScore]:
        """Score every configured model and return them best first.

        Returns
        -------
        list[ModelScore]
            Sorted by percentage descending; ties preserve configuration
            order.  Empty when no models are configured.
        """
        if not self._profiles:
            logger.warning("rank_models_no_profiles")
            return []

        user_profile = self.normalize_responses(answers)
        scored = [
            (model_id, self.calculate_model_match(user_profile, profile))
            for model_id, profile in self._profiles.items()
        ]
        scored.sort(key=lambda item: -item[1])

        ranked = [
            ModelScore(
                model_id=model_id,
                display_name=self._display_names.get(model_id, model_id),
                category=category_for(percentage, index),
                percentage=max(0, min(100, percentage)),
            )
            for index, (model_id, percentage) in enumerate(scored)
        ]

        logger.info(
            "models_ranked",
            model_count=len(ranked),
            top_model=ranked[0].model_id,
            top_percentage=ranked[0].percentage,
        )
        return ranked


def rank_models(answers: QuizAnswers) -> list[ModelScore]:
    return RankingService().rank_models(answers)
