"""
BizModelAI — Trait accumulator and normaliser.

Turns a completed quiz into twelve entrepreneurial trait scores on a 1-5
scale.  Every answered question contributes additive deltas to one or more
raw trait accumulators through an explicit contribution rule:

  - ``Categorical``  option id -> {trait: delta}
  - ``Bucketed``     numeric answer -> band -> {trait: delta}
  - ``Likert``       1-5 answer -> per-trait ``Linear`` / ``Stepped`` terms
  - ``TagBonus``     each selected tag -> {trait: delta}, summed

Raw totals are then normalised per trait against fixed (min, max) bounds:

    score = clamp(1 + (raw - min) / (max - min) * 4, 1, 5)

rounded half-up to one decimal.  Unanswered questions and unknown option ids
contribute nothing; the calculation never raises.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple

import structlog

from app.schemas.quiz import QuizAnswers, TraitScores

logger = structlog.get_logger(__name__)

TRAIT_NAMES: tuple[str, ...] = (
    "social_comfort",
    "discipline",
    "risk_tolerance",
    "tech_comfort",
    "structure_preference",
    "motivation",
    "feedback_resilience",
    "creativity",
    "confidence",
    "adaptability",
    "focus_preference",
    "resilience",
)

# (min, max) raw bounds used for normalisation.
NORMALISATION_BOUNDS: dict[str, tuple[float, float]] = {
    "social_comfort": (-15, 25),
    "discipline": (-12, 28),
    "risk_tolerance": (-18, 22),
    "tech_comfort": (-8, 32),
    "structure_preference": (-20, 20),
    "motivation": (-10, 30),
    "feedback_resilience": (-15, 25),
    "creativity": (-12, 28),
    "confidence": (-18, 22),
    "adaptability": (-10, 30),
    "focus_preference": (-15, 25),
    "resilience": (-12, 28),
}


# ──────────────────────────────────────────────────────────────────────────────
# Contribution rule types
# ──────────────────────────────────────────────────────────────────────────────

class Linear(NamedTuple):
    """``coef * (value - offset)``, optionally floored."""

    trait: str
    coef: float
    offset: float = 3
    floor: bool = False

    def delta(self, value: float) -> float:
        result = self.coef * (value - self.offset)
        return float(math.floor(result)) if self.floor else result


class Stepped(NamedTuple):
    """Discrete lookup on the raw answer with a catch-all default."""

    trait: str
    steps: dict[int, float]
    default: float

    def delta(self, value: float) -> float:
        return self.steps.get(value, self.default)


class Categorical(NamedTuple):
    field: str
    table: dict[str, dict[str, float]]

    def apply(self, value: Any, raw: dict[str, float]) -> None:
        if not isinstance(value, str):
            return
        _add(raw, self.table.get(value, {}))


class Bucketed(NamedTuple):
    """Numeric answer mapped to the first band whose threshold it meets."""

    field: str
    bands: tuple[tuple[float, int], ...]  # (threshold, bucket), descending
    fallback: int
    table: dict[int, dict[str, float]]

    def apply(self, value: Any, raw: dict[str, float]) -> None:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return
        bucket = self.fallback
        for threshold, band in self.bands:
            if value >= threshold:
                bucket = band
                break
        _add(raw, self.table[bucket])


class Likert(NamedTuple):
    field: str
    terms: tuple[Linear | Stepped, ...]

    def apply(self, value: Any, raw: dict[str, float]) -> None:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return
        for term in self.terms:
            raw[term.trait] += term.delta(value)


class TagBonus(NamedTuple):
    field: str
    table: dict[str, dict[str, float]]

    def apply(self, value: Any, raw: dict[str, float]) -> None:
        for tag in value or ():
            _add(raw, self.table.get(tag, {}))


def _add(raw: dict[str, float], deltas: dict[str, float]) -> None:
    for trait, delta in deltas.items():
        raw[trait] += delta


def _floored(trait: str, coef: float) -> Linear:
    return Linear(trait, coef, floor=True)


def _raw_value(trait: str) -> Linear:
    return Linear(trait, 1, offset=0)


# ──────────────────────────────────────────────────────────────────────────────
# Contribution tables, in question order
# ──────────────────────────────────────────────────────────────────────────────

CONTRIBUTION_RULES: tuple[Categorical | Bucketed | Likert | TagBonus, ...] = (
    # Q1
    Categorical("main_motivation", {
        "financial-freedom": {"social_comfort": 1, "discipline": 2, "risk_tolerance": 2, "motivation": 3, "confidence": 2, "adaptability": 2, "focus_preference": 3, "resilience": 2},
        "flexibility-autonomy": {"social_comfort": -1, "discipline": 1, "risk_tolerance": 1, "motivation": 2, "structure_preference": -2, "adaptability": 3, "focus_preference": 1, "resilience": 1},
        "purpose-impact": {"social_comfort": 2, "motivation": 3, "creativity": 3, "confidence": 1, "adaptability": 2, "focus_preference": 2, "resilience": 3},
        "creativity-passion": {"creativity": 4, "motivation": 2, "structure_preference": -1, "confidence": 1, "adaptability": 3, "focus_preference": 1, "resilience": 2},
    }),
    # Q2
    Categorical("first_income_timeline", {
        "under-1-month": {"motivation": 4, "risk_tolerance": 3, "confidence": 2, "discipline": -1, "adaptability": 4, "focus_preference": 4, "resilience": 3},
        "1-3-months": {"motivation": 3, "risk_tolerance": 2, "confidence": 1, "discipline": 1, "adaptability": 3, "focus_preference": 3, "resilience": 2},
        "3-6-months": {"motivation": 2, "risk_tolerance": 1, "confidence": 1, "discipline": 2, "adaptability": 2, "focus_preference": 2, "resilience": 3},
        "no-rush": {"motivation": 1, "risk_tolerance": -1, "confidence": -1, "discipline": 3, "adaptability": 1, "focus_preference": 1, "resilience": 4},
    }),
    # Q3
    Bucketed("success_income_goal", ((10000, 10000), (5000, 5000), (2000, 2000)), 500, {
        500: {"confidence": -2, "motivation": 1, "risk_tolerance": -1, "adaptability": 1, "focus_preference": 2, "resilience": 1},
        2000: {"confidence": 1, "motivation": 2, "risk_tolerance": 1, "adaptability": 2, "focus_preference": 2, "resilience": 2},
        5000: {"confidence": 2, "motivation": 3, "risk_tolerance": 2, "adaptability": 3, "focus_preference": 3, "resilience": 3},
        10000: {"confidence": 3, "motivation": 4, "risk_tolerance": 3, "adaptability": 4, "focus_preference": 4, "resilience": 4},
    }),
    # Q4
    Bucketed("upfront_investment", ((2000, 2000), (1000, 1000), (250, 250)), 0, {
        0: {"risk_tolerance": -3, "confidence": -2, "motivation": -1},
        250: {"risk_tolerance": -1, "confidence": -1, "motivation": 1},
        1000: {"risk_tolerance": 1, "confidence": 1, "motivation": 2},
        2000: {"risk_tolerance": 3, "confidence": 2, "motivation": 3},
    }),
    # Q5
    Likert("passion_identity_alignment", (
        Linear("creativity", 1),
        _floored("motivation", 1.5),
        Linear("structure_preference", -1),
        Linear("adaptability", 1),
        Linear("focus_preference", 1),
    )),
    # Q6
    Categorical("business_exit_plan", {
        "yes": {"motivation": 2, "risk_tolerance": 2, "confidence": 1, "structure_preference": 1},
        "no": {"motivation": 1, "risk_tolerance": -1, "confidence": -1, "structure_preference": -1},
        "not-sure": {"motivation": 1, "risk_tolerance": 0, "confidence": 0, "structure_preference": 0},
    }),
    # Q7
    Categorical("business_growth_size", {
        "side-income": {"confidence": -1, "motivation": 1, "risk_tolerance": -1, "discipline": 1},
        "full-time-income": {"confidence": 1, "motivation": 2, "risk_tolerance": 1, "discipline": 2},
        "multi-6-figure": {"confidence": 2, "motivation": 3, "risk_tolerance": 2, "discipline": 3},
        "widely-recognized": {"confidence": 3, "motivation": 4, "risk_tolerance": 3, "discipline": 4, "social_comfort": 2},
    }),
    # Q8
    Likert("passive_income_importance", (
        Linear("motivation", 1),
        _floored("discipline", 1.5),
        Linear("structure_preference", 1),
    )),
    # Q9
    Bucketed("weekly_time_commitment", ((25, 40), (10, 25), (5, 10)), 5, {
        5: {"discipline": -2, "motivation": -1, "confidence": -1},
        10: {"discipline": 1, "motivation": 1, "confidence": 0},
        25: {"discipline": 2, "motivation": 2, "confidence": 1},
        40: {"discipline": 3, "motivation": 3, "confidence": 2},
    }),
    # Q10
    Likert("long_term_consistency", (
        Linear("discipline", 2),
        Linear("motivation", 1),
        Linear("feedback_resilience", 1),
        _floored("confidence", 1.5),
        Linear("adaptability", 1),
        Linear("focus_preference", 1),
        _raw_value("resilience"),
    )),
    # Q11
    Likert("trial_error_comfort", (
        Linear("risk_tolerance", 2),
        Linear("structure_preference", -2),
        Linear("creativity", 1),
        Linear("feedback_resilience", 1),
        _raw_value("adaptability"),
        Linear("focus_preference", 1),
        Linear("resilience", 0.8, offset=1),
    )),
    # Q12
    Categorical("learning_preference", {
        "hands-on": {"creativity": 2, "structure_preference": -1, "risk_tolerance": 1, "tech_comfort": 1},
        "tutorials": {"creativity": 0, "structure_preference": 1, "risk_tolerance": 0, "tech_comfort": 2},
        "reading": {"creativity": 1, "structure_preference": 2, "risk_tolerance": -1, "tech_comfort": 0},
        "coaching": {"creativity": 0, "structure_preference": 1, "risk_tolerance": -1, "social_comfort": 1},
    }),
    # Q13
    Likert("systems_routines_enjoyment", (
        Linear("discipline", 2),
        Linear("structure_preference", 2),
        Linear("creativity", -1),
        Linear("tech_comfort", 1),
    )),
    # Q14
    Likert("discouragement_resilience", (
        Linear("feedback_resilience", 2),
        Linear("motivation", 1),
        Linear("confidence", 1),
        _floored("discipline", 1.5),
        Linear("adaptability", 1),
        Linear("focus_preference", 1),
        _raw_value("resilience"),
    )),
    # Q15
    Categorical("tool_learning_willingness", {
        "yes": {"tech_comfort": 3, "structure_preference": 1, "motivation": 1, "confidence": 1},
        "no": {"tech_comfort": -3, "structure_preference": -1, "motivation": -1, "confidence": -1},
    }),
    # Q16
    Likert("organization_level", (
        Linear("discipline", 2),
        Linear("structure_preference", 2),
        Linear("confidence", 1),
        _floored("tech_comfort", 1.5),
    )),
    # Q17
    Likert("self_motivation_level", (
        Linear("motivation", 2),
        Linear("discipline", 2),
        Linear("confidence", 1),
        _floored("feedback_resilience", 1.5),
    )),
    # Q18
    Likert("uncertainty_handling", (
        Linear("risk_tolerance", 2),
        Linear("structure_preference", -2),
        Linear("confidence", 1),
        _floored("creativity", 1.5),
        _raw_value("adaptability"),
        Linear("focus_preference", 1),
        Linear("resilience", 0.7, offset=1),
    )),
    # Q19
    Categorical("repetitive_tasks_feeling", {
        "avoid": {"discipline": -2, "structure_preference": -2, "creativity": 2, "motivation": -1},
        "tolerate": {"discipline": 1, "structure_preference": 0, "creativity": 0, "motivation": 0},
        "dont-mind": {"discipline": 2, "structure_preference": 1, "creativity": -1, "motivation": 1},
        "enjoy": {"discipline": 3, "structure_preference": 2, "creativity": -2, "motivation": 2},
    }),
    # Q20
    Categorical("work_collaboration_preference", {
        "solo-only": {"social_comfort": -3, "structure_preference": -1, "confidence": -1, "creativity": 1},
        "mostly-solo": {"social_comfort": -1, "structure_preference": 0, "confidence": 0, "creativity": 1},
        "team-oriented": {"social_comfort": 3, "structure_preference": 1, "confidence": 1, "creativity": 0},
        "both": {"social_comfort": 1, "structure_preference": 0, "confidence": 1, "creativity": 1},
    }),
    # Q21
    Likert("brand_face_comfort", (
        Linear("social_comfort", 2),
        Linear("confidence", 2),
        _floored("motivation", 1.5),
        Linear("creativity", 1),
    )),
    # Q22
    Likert("competitiveness_level", (
        Linear("motivation", 2),
        Linear("confidence", 2),
        Linear("risk_tolerance", 1),
        _floored("feedback_resilience", 1.5),
    )),
    # Q23
    Likert("creative_work_enjoyment", (
        Linear("creativity", 2),
        Linear("structure_preference", -1),
        Linear("motivation", 1),
        _floored("confidence", 1.5),
        Linear("adaptability", 1),
        Stepped("focus_preference", {5: 1, 4: 2, 3: 3, 2: 4}, 5),
    )),
    # Q24
    Likert("direct_communication_enjoyment", (
        Linear("social_comfort", 2),
        Linear("confidence", 2),
        Linear("feedback_resilience", 1),
        _floored("motivation", 1.5),
    )),
    # Q25
    Categorical("work_structure_preference", {
        "clear-steps": {"structure_preference": 3, "discipline": 2, "creativity": -1, "risk_tolerance": -1},
        "some-structure": {"structure_preference": 1, "discipline": 1, "creativity": 0, "risk_tolerance": 0},
        "mostly-flexible": {"structure_preference": -1, "discipline": 0, "creativity": 1, "risk_tolerance": 1},
        "total-freedom": {"structure_preference": -3, "discipline": -1, "creativity": 2, "risk_tolerance": 2},
    }),
    # Q26
    Likert("tech_skills_rating", (
        Linear("tech_comfort", 3),
        Linear("confidence", 1),
        _floored("structure_preference", 0.5),
    )),
    # Q27
    Categorical("workspace_availability", {
        "yes": {"discipline": 2, "structure_preference": 2, "confidence": 1, "tech_comfort": 1},
        "no": {"discipline": -2, "structure_preference": -2, "confidence": -1, "tech_comfort": -1},
    }),
    # Q28
    Categorical("support_system_strength", {
        "none": {"confidence": -2, "feedback_resilience": -2, "motivation": -1, "social_comfort": -1},
        "one-two": {"confidence": 0, "feedback_resilience": 0, "motivation": 0, "social_comfort": 0},
        "small-helpful-group": {"confidence": 1, "feedback_resilience": 1, "motivation": 1, "social_comfort": 1},
        "very-strong": {"confidence": 2, "feedback_resilience": 2, "motivation": 2, "social_comfort": 2},
    }),
    # Q29
    Likert("internet_device_reliability", (
        Linear("tech_comfort", 2),
        Linear("structure_preference", 1),
        _floored("confidence", 1.5),
        Linear("discipline", 1),
    )),
    # Q30
    TagBonus("familiar_tools", {
        "google-docs-sheets": {"tech_comfort": 2, "discipline": 1, "adaptability": 1, "focus_preference": 1},
        "canva": {"tech_comfort": 2, "creativity": 1, "adaptability": 1, "focus_preference": 1},
        "notion": {"tech_comfort": 3, "structure_preference": 1, "adaptability": 1, "focus_preference": 1},
        "shopify-wix": {"tech_comfort": 3, "confidence": 1, "adaptability": 1, "focus_preference": 1},
        "zoom-streamyard": {"tech_comfort": 2, "social_comfort": 1, "adaptability": 1, "focus_preference": 1},
    }),
    # Q31
    Categorical("decision_making_style", {
        "quickly-instinctively": {"risk_tolerance": 2, "structure_preference": -2, "confidence": 1, "creativity": 1},
        "after-some-research": {"risk_tolerance": 1, "structure_preference": 0, "confidence": 1, "discipline": 1},
        "logical-process": {"risk_tolerance": 0, "structure_preference": 2, "confidence": 1, "discipline": 2},
        "talking-to-others": {"risk_tolerance": -1, "structure_preference": 0, "confidence": 0, "social_comfort": 2},
    }),
    # Q32
    Likert("risk_comfort_level", (
        Linear("risk_tolerance", 3),
        Linear("confidence", 2),
        Linear("motivation", 1),
        _floored("feedback_resilience", 1.5),
    )),
    # Q33
    Likert("feedback_rejection_response", (
        Linear("feedback_resilience", 3),
        Linear("confidence", 2),
        Linear("motivation", 1),
        _floored("social_comfort", 1.5),
        Linear("adaptability", 1),
        Linear("focus_preference", 1),
        _raw_value("resilience"),
    )),
    # Q34
    Categorical("path_preference", {
        "proven-paths": {"creativity": -2, "risk_tolerance": -2, "structure_preference": 2, "confidence": 1},
        "mix": {"creativity": 0, "risk_tolerance": 0, "structure_preference": 0, "confidence": 1},
        "mostly-original": {"creativity": 2, "risk_tolerance": 2, "structure_preference": -1, "confidence": 1},
        "build-something-new": {"creativity": 3, "risk_tolerance": 3, "structure_preference": -2, "confidence": 2},
    }),
    # Q35
    Likert("control_importance", (
        Linear("confidence", 2),
        Linear("structure_preference", 1),
        _floored("risk_tolerance", 1.5),
        Linear("discipline", 1),
    )),
    # Q36
    Categorical("online_presence_comfort", {
        "yes": {"social_comfort": 2, "confidence": 2, "tech_comfort": 1, "creativity": 1},
        "no": {"social_comfort": -2, "confidence": -2, "tech_comfort": -1, "creativity": -1},
    }),
    # Q37
    Categorical("client_calls_comfort", {
        "yes": {"social_comfort": 3, "confidence": 2, "feedback_resilience": 1},
        "no": {"social_comfort": -3, "confidence": -2, "feedback_resilience": -1},
    }),
    # Q38
    Categorical("physical_shipping_openness", {
        "yes": {"discipline": 2, "structure_preference": 2, "tech_comfort": 1},
        "no": {"discipline": -1, "structure_preference": -1, "tech_comfort": 0},
    }),
    # Q39
    Categorical("work_style_preference", {
        "create-once-passive": {"creativity": 2, "motivation": 2, "structure_preference": 1, "discipline": 1},
        "work-with-people": {"social_comfort": 3, "discipline": 2, "feedback_resilience": 1},
        "mix-both": {"creativity": 1, "social_comfort": 1, "discipline": 1, "motivation": 1},
    }),
)

TRAIT_DESCRIPTIONS: dict[str, dict[str, str]] = {
    "social_comfort": {
        "low": "Prefers working independently and behind-the-scenes",
        "medium": "Comfortable with moderate social interaction",
        "high": "Thrives on social interaction and being visible",
    },
    "discipline": {
        "low": "Works best with flexibility and variety",
        "medium": "Balances structure with adaptability",
        "high": "Excels with consistent routines and systems",
    },
    "risk_tolerance": {
        "low": "Prefers proven, safe approaches",
        "medium": "Comfortable with calculated risks",
        "high": "Embraces uncertainty and bold ventures",
    },
    "tech_comfort": {
        "low": "Prefers simple, familiar tools",
        "medium": "Comfortable learning new technologies",
        "high": "Loves exploring cutting-edge tools",
    },
    "structure_preference": {
        "low": "Thrives with creative freedom",
        "medium": "Appreciates some guidance and flexibility",
        "high": "Performs best with clear frameworks",
    },
    "motivation": {
        "low": "Steady, sustainable approach",
        "medium": "Balanced drive and patience",
        "high": "High energy and ambitious goals",
    },
    "feedback_resilience": {
        "low": "Sensitive to criticism, needs encouragement",
        "medium": "Handles feedback constructively",
        "high": "Uses criticism as fuel for improvement",
    },
    "creativity": {
        "low": "Prefers systematic, logical approaches",
        "medium": "Balances creativity with practicality",
        "high": "Thrives on innovation and original ideas",
    },
    "confidence": {
        "low": "Cautious and thoughtful decision-maker",
        "medium": "Balanced confidence and humility",
        "high": "Bold and decisive leader",
    },
    "adaptability": {
        "low": "Prefers stability and routine",
        "medium": "Adjusts well to moderate changes",
        "high": "Thrives in dynamic, changing environments",
    },
    "focus_preference": {
        "low": "Prefers creative, varied tasks",
        "medium": "Balances focus with creativity",
        "high": "Excels at deep, concentrated work",
    },
    "resilience": {
        "low": "Needs support during setbacks",
        "medium": "Recovers steadily from challenges",
        "high": "Bounces back quickly from failures",
    },
}


def _round_half_up(value: float, digits: int = 1) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def normalise_raw_score(trait: str, raw: float) -> float:
    lo, hi = NORMALISATION_BOUNDS[trait]
    scaled = 1 + (raw - lo) / (hi - lo) * 4
    return _round_half_up(max(1.0, min(5.0, scaled)))


def trait_level(score: float) -> str:
    if score <= 2.5:
        return "low"
    if score <= 3.5:
        return "medium"
    return "high"


class TraitService:
    """Compute normalised entrepreneurial trait scores from quiz answers."""

    RULES = CONTRIBUTION_RULES

    def accumulate(self, answers: QuizAnswers) -> dict[str, float]:
        """Return the raw (un-normalised) accumulator totals."""
        raw: dict[str, float] = {trait: 0.0 for trait in TRAIT_NAMES}
        for rule in self.RULES:
            value = getattr(answers, rule.field, None)
            if value is None:
                continue
            rule.apply(value, raw)
        return raw

    def compute_trait_scores(self, answers: QuizAnswers) -> TraitScores:
        """Compute the twelve trait scores for ``answers``.

        Parameters
        ----------
        answers:
            A (possibly partial) quiz snapshot.

        Returns
        -------
        TraitScores
            Each trait in ``[1.0, 5.0]`` with one decimal place.
        """
        raw = self.accumulate(answers)
        scores = {trait: normalise_raw_score(trait, raw[trait]) for trait in TRAIT_NAMES}

        logger.debug("trait_scores_computed", **scores)
        return TraitScores(**scores)

    def describe(self, scores: TraitScores) -> list[dict]:
        """Return a low/medium/high phrase per trait."""
        described: list[dict] = []
        for trait in TRAIT_NAMES:
            score = getattr(scores, trait)
            level = trait_level(score)
            described.append({
                "trait": trait,
                "score": score,
                "level": level,
                "description": TRAIT_DESCRIPTIONS[trait][level],
            })
        return described


def compute_trait_scores(answers: QuizAnswers) -> TraitScores:
    return TraitService().compute_trait_scores(answers)
