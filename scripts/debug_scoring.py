#!/usr/bin/env python3
"""
BizModelAI — Scoring Debugger: traits and model ranking for a quiz file

Prints the twelve trait scores and the business-model ranking computed
from a JSON file of quiz answers (camelCase or snake_case keys).  No
external calls are made.

Usage examples
--------------
  # Traits and the full ranking
  python scripts/debug_scoring.py answers.json

  # Only the three best and three worst models
  python scripts/debug_scoring.py answers.json --top 3 --bottom 3

  # Machine-readable output
  python scripts/debug_scoring.py answers.json --json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure the project root is importable
sys.path.insert(0, ".")

from pydantic import ValidationError

from app.schemas.quiz import QuizAnswers
from app.services.ranking_service import RankingService, bottom_matches, top_matches
from app.services.trait_service import TRAIT_NAMES, TraitService, trait_level


def load_answers(path: Path) -> QuizAnswers:
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    # Saved quiz attempts wrap the answers under "quizData".
    if isinstance(data, dict) and isinstance(data.get("quizData"), dict):
        data = data["quizData"]
    return QuizAnswers.model_validate(data)


# ──────────────────────────────────────────────────────────────────────────────
# Output
# ──────────────────────────────────────────────────────────────────────────────

def print_report(answers: QuizAnswers, top: int | None, bottom: int | None) -> None:
    scores = TraitService().compute_trait_scores(answers)
    ranked = RankingService().rank_models(answers)

    print(f"\n{'=' * 60}")
    print("  Trait Scores")
    print(f"{'=' * 60}")
    for trait in TRAIT_NAMES:
        score = getattr(scores, trait)
        print(f"  {trait:<26} {score:>4.1f}  {trait_level(score)}")

    sections = []
    if top is None and bottom is None:
        sections.append(("Ranking", ranked))
    else:
        if top:
            sections.append((f"Top {top}", top_matches(ranked, top)))
        if bottom:
            sections.append((f"Bottom {bottom} (worst first)", bottom_matches(ranked, bottom)))

    for title, models in sections:
        print(f"\n{'=' * 60}")
        print(f"  {title}")
        print(f"{'=' * 60}")
        for model in models:
            print(f"  {model.percentage:>3}%  {model.display_name:<32} {model.category}")
    print()


def build_json(answers: QuizAnswers, top: int | None, bottom: int | None) -> dict:
    ranked = RankingService().rank_models(answers)
    return {
        "traitScores": TraitService().compute_trait_scores(answers).model_dump(),
        "ranked": [m.model_dump() for m in ranked],
        "top": [m.model_dump() for m in top_matches(ranked, top or 3)],
        "bottom": [m.model_dump() for m in bottom_matches(ranked, bottom or 3)],
    }


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Print trait scores and business-model ranking for quiz answers.",
    )
    parser.add_argument("answers", type=Path, help="Path to a JSON file of quiz answers")
    parser.add_argument("--top", type=int, default=None, help="Show only the N best models")
    parser.add_argument("--bottom", type=int, default=None, help="Show only the N worst models")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    args = parser.parse_args()

    try:
        answers = load_answers(args.answers)
    except FileNotFoundError:
        print(f"error: no such file: {args.answers}", file=sys.stderr)
        return 1
    except (json.JSONDecodeError, ValidationError) as exc:
        print(f"error: invalid answers file: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(build_json(answers, args.top, args.bottom), indent=2))
    else:
        print_report(answers, args.top, args.bottom)
    return 0


if __name__ == "__main__":
    sys.exit(main())
