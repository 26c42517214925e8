"""Unit tests for RankingService — business-model fit ranking."""
import pytest

from app.schemas.quiz import QuizAnswers
from app.services.ranking_service import (
    BUSINESS_MODEL_PROFILES,
    DIMENSIONS,
    RankingService,
    bottom_matches,
    category_for,
    rank_models,
    similarity,
    top_matches,
)


@pytest.fixture
def ranking_service():
    return RankingService()


class TestSimilarity:
    """Tests for the piecewise similarity curve."""

    def test_identical_values(self):
        assert similarity(0.0) == pytest.approx(1.0)

    def test_band_edges(self):
        assert similarity(0.05) == pytest.approx(0.98)
        assert similarity(0.15) == pytest.approx(0.90)
        assert similarity(0.55) == pytest.approx(0.10)
        assert similarity(1.0) == pytest.approx(0.0)

    def test_symmetric(self):
        assert similarity(-0.3) == similarity(0.3)

    def test_non_increasing(self):
        values = [similarity(i / 100) for i in range(101)]
        assert all(a >= b - 1e-12 for a, b in zip(values, values[1:]))


class TestNormalizeResponses:
    """Tests for normalize_responses()."""

    def test_defaults_for_empty_quiz(self, ranking_service, empty_answers):
        profile = ranking_service.normalize_responses(empty_answers)
        assert set(profile) == set(DIMENSIONS)
        assert profile["income_ambition"] == pytest.approx((5000 / 15000 + 0.5) / 2)
        assert profile["time_commitment"] == pytest.approx(0.8)
        assert profile["upfront_investment_tolerance"] == 0.0
        assert profile["autonomy_control"] == pytest.approx(0.75)
        assert profile["social_media_comfort"] == pytest.approx(2 / 3)
        assert profile["speed_to_income"] == pytest.approx(0.4)

    def test_every_dimension_in_unit_range(self, ranking_service, sample_answers):
        for value in ranking_service.normalize_responses(sample_answers).values():
            assert 0.0 <= value <= 1.0

    def test_mapped_zero_is_kept(self, ranking_service):
        """An answer that maps to 0.0 is not replaced by the default."""
        profile = ranking_service.normalize_responses(
            QuizAnswers(business_exit_plan="no", promoting_others_openness="no")
        )
        assert profile["business_exit_strategy"] == 0.0
        assert profile["promote_others_willingness"] == 0.0

    @pytest.mark.parametrize("field,value,dimension,expected", [
        ("tool_learning_willingness", "no", "tool_learning", 0.0),
        ("repetitive_tasks_feeling", "avoid", "repetition_tolerance", 0.0),
        ("repetitive_tasks_feeling", "I avoid them", "repetition_tolerance", 0.0),
        ("path_preference", "proven-paths", "originality_preference", 0.0),
        ("path_preference", "Proven Paths", "originality_preference", 0.0),
        ("work_style_preference", "work-with-people", "product_vs_service", 0.0),
        ("teach_vs_solve_preference", "solve", "teaching_vs_solving", 0.0),
        ("ecosystem_participation", "no", "platform_ecosystem_comfort", 0.0),
        ("work_collaboration_preference", "team-focused", "collaboration_preference", 0.0),
        ("work_collaboration_preference", "team-oriented", "collaboration_preference", 0.2),
        ("first_income_timeline", "2-plus-years", "speed_to_income", 0.0),
    ])
    def test_zero_and_option_id_mappings(self, ranking_service, field, value, dimension, expected):
        """Option ids resolve case-insensitively and a mapped 0.0 stays 0.0."""
        profile = ranking_service.normalize_responses(QuizAnswers(**{field: value}))
        assert profile[dimension] == pytest.approx(expected)

    def test_growth_option_id_feeds_income_ambition(self, ranking_service):
        profile = ranking_service.normalize_responses(
            QuizAnswers(business_growth_size="multi-6-figure")
        )
        assert profile["income_ambition"] == pytest.approx((5000 / 15000 + 0.8) / 2)

    def test_unmapped_values_use_defaults(self, ranking_service):
        profile = ranking_service.normalize_responses(QuizAnswers(
            tool_learning_willingness="sometimes",
            repetitive_tasks_feeling="depends",
            path_preference="unsure",
        ))
        assert profile["tool_learning"] == 1.0
        assert profile["repetition_tolerance"] == pytest.approx(0.7)
        assert profile["originality_preference"] == pytest.approx(0.5)

    def test_display_labels_resolve(self, ranking_service):
        profile = ranking_service.normalize_responses(
            QuizAnswers(work_structure_preference="Total Freedom", first_income_timeline="Under 1 month")
        )
        assert profile["structure_preference"] == pytest.approx((0.5 + 0.1) / 2)
        assert profile["speed_to_income"] == 1.0

    def test_large_values_are_capped(self, ranking_service):
        profile = ranking_service.normalize_responses(
            QuizAnswers(success_income_goal=50000, upfront_investment=9000, weekly_time_commitment=60)
        )
        assert profile["upfront_investment_tolerance"] == 1.0
        assert profile["time_commitment"] == 1.0


class TestCalculateModelMatch:
    """Tests for calculate_model_match()."""

    def test_perfect_match_scores_96(self, ranking_service):
        profile = BUSINESS_MODEL_PROFILES["freelancing"]
        assert ranking_service.calculate_model_match(dict(profile), profile) == 96

    def test_total_mismatch_scores_40(self, ranking_service):
        ideal = {d: 0.0 for d in DIMENSIONS}
        user = {d: 1.0 for d in DIMENSIONS}
        assert ranking_service.calculate_model_match(user, ideal) == 40


class TestRankModels:
    """Tests for rank_models() and the top/bottom views."""

    def test_sample_quiz_ranking(self, ranking_service, sample_answers):
        ranked = ranking_service.rank_models(sample_answers)
        assert len(ranked) == len(BUSINESS_MODEL_PROFILES)
        assert [m.model_id for m in ranked[:3]] == [
            "ai-marketing-agency",
            "affiliate-marketing",
            "e-commerce-dropshipping",
        ]
        assert [m.percentage for m in ranked[:3]] == [86, 86, 85]

    def test_sorted_descending(self, ranking_service, sample_answers):
        percentages = [m.percentage for m in ranking_service.rank_models(sample_answers)]
        assert percentages == sorted(percentages, reverse=True)

    def test_ties_keep_configuration_order(self, ranking_service, sample_answers):
        ranked = ranking_service.rank_models(sample_answers)
        order = list(BUSINESS_MODEL_PROFILES)
        for first, second in zip(ranked, ranked[1:]):
            if first.percentage == second.percentage:
                assert order.index(first.model_id) < order.index(second.model_id)

    def test_categories(self, ranking_service, sample_answers):
        ranked = ranking_service.rank_models(sample_answers)
        assert all(m.category == "Best Fit" for m in ranked[:3])
        by_id = {m.model_id: m for m in ranked}
        assert by_id["youtube-automation"].category == "Strong Fit"
        assert by_id["handmade-goods"].category == "Possible Fit"

    def test_percentages_within_match_range(self, ranking_service, high_risk_answers):
        for model in ranking_service.rank_models(high_risk_answers):
            assert 40 <= model.percentage <= 96

    def test_high_risk_profile_favours_risk_tolerant_models(self, ranking_service, high_risk_answers):
        top = top_matches(ranking_service.rank_models(high_risk_answers), 3)
        assert any(BUSINESS_MODEL_PROFILES[m.model_id]["risk_tolerance"] >= 0.7 for m in top)

    def test_empty_quiz_ranks_with_defaults(self, empty_answers):
        ranked = rank_models(empty_answers)
        assert ranked[0].model_id == "local-service"
        assert ranked[0].percentage == 86

    def test_no_profiles(self, sample_answers):
        assert RankingService(profiles={}).rank_models(sample_answers) == []

    def test_bottom_matches_worst_first(self, ranking_service, sample_answers):
        ranked = ranking_service.rank_models(sample_answers)
        bottom = bottom_matches(ranked, 3)
        assert [m.model_id for m in bottom] == [
            "handmade-goods",
            "investing-trading",
            "saas-development",
        ]
        assert bottom == list(reversed(ranked))[:3]

    def test_view_sizes(self, ranking_service, sample_answers):
        ranked = ranking_service.rank_models(sample_answers)
        assert bottom_matches(ranked, 0) == []
        assert top_matches(ranked, 0) == []
        assert len(bottom_matches(ranked, 100)) == len(ranked)
        assert bottom_matches(ranked, 100)[0] == ranked[-1]

    @pytest.mark.parametrize(
        "percentage,index,category",
        [(60, 0, "Best Fit"), (80, 3, "Strong Fit"), (75, 5, "Strong Fit"), (74, 5, "Possible Fit"), (54, 9, "Poor Fit")],
    )
    def test_category_for(self, percentage, index, category):
        assert category_for(percentage, index) == category
