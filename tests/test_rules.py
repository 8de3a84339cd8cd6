# tests/test_rules.py
"""
Rule scorer tests: weighted aggregation, graduated range matching,
unknown data and weight scale conversions.

Run with: pytest tests/test_rules.py -v
"""

import pytest

from lead_qualifier.core.exceptions import NoCriteriaError
from lead_qualifier.models.criterion import ICPCriterion, CriterionDataType
from lead_qualifier.scoring.features import extract_features
from lead_qualifier.scoring.rules import score_criteria, to_external_weight, to_internal_weight


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def budget_industry():
    return [
        ICPCriterion(name="Budget", data_type=CriterionDataType.BUDGET, weight=8, ideal_values=["$50k+"]),
        ICPCriterion(name="Industry", data_type=CriterionDataType.INDUSTRY, weight=2, ideal_values=["SaaS", "Fintech"]),
    ]


def features_for(**fields):
    return extract_features({"email": "sam@example.com", **fields})


# ============================================================================
# TEST: Aggregation
# ============================================================================

class TestWeightedScore:

    def test_all_criteria_matched_scores_100(self, budget_industry):
        result = score_criteria(budget_industry, features_for(budget_range="$75,000", industry="SaaS"))

        assert result.score == 100.0
        assert result.breakdown["Budget"]["score"] == 100
        assert result.breakdown["Industry"]["score"] == 100
        assert result.unknown == []

    def test_missed_light_criterion_scores_80(self, budget_industry):
        result = score_criteria(budget_industry, features_for(budget_range="$75,000", industry="Healthcare"))

        assert result.score == 80.0
        assert result.breakdown["Industry"]["score"] == 0
        assert result.breakdown["Industry"]["note"] == "Outside ideal industry (Healthcare)"

    def test_near_miss_budget_gets_partial_credit(self, budget_industry):
        result = score_criteria(budget_industry, features_for(budget_range="$30,000", industry="SaaS"))

        # budget match = 1 - 20k / (0.5 * 50k) = 0.2
        assert result.score == 36.0
        assert result.breakdown["Budget"]["score"] == 20
        assert result.breakdown["Budget"]["note"] == "Close to ideal budget: $30,000 vs $50k+"

    def test_missing_answer_is_unknown_not_a_miss(self, budget_industry):
        result = score_criteria(budget_industry, features_for(industry="Fintech"))

        assert result.score == 20.0
        assert result.unknown == ["Budget"]
        assert result.breakdown["Budget"] == {
            "score": 0,
            "note": "Unknown: no budget data provided",
            "weight": 80,
            "unknown": True,
        }

    def test_breakdown_reports_external_weights(self, budget_industry):
        result = score_criteria(budget_industry, features_for(budget_range="$75,000", industry="SaaS"))

        assert result.breakdown["Budget"]["weight"] == 80
        assert result.breakdown["Industry"]["weight"] == 20

    def test_same_input_same_output(self, budget_industry):
        features = features_for(budget_range="$30,000", industry="Healthcare")

        first = score_criteria(budget_industry, features)
        second = score_criteria(budget_industry, features)

        assert first == second

    def test_no_criteria_raises(self):
        with pytest.raises(NoCriteriaError):
            score_criteria([], features_for(industry="SaaS"))

    def test_duplicate_names_get_distinct_breakdown_keys(self):
        criteria = [
            ICPCriterion(name="Fit", data_type=CriterionDataType.INDUSTRY, weight=5, ideal_values=["SaaS"]),
            ICPCriterion(name="Fit", data_type=CriterionDataType.JOB_TITLE, weight=5, ideal_values=["VP"]),
        ]
        result = score_criteria(criteria, features_for(industry="SaaS", job_title="VP Marketing"))

        assert set(result.breakdown) == {"Fit", "Fit (2)"}
        assert result.score == 100.0


# ============================================================================
# TEST: Matching rules
# ============================================================================

class TestMatching:

    def test_industry_synonym_matches(self, budget_industry):
        result = score_criteria(budget_industry, features_for(budget_range="$75,000", industry="Software"))

        assert result.breakdown["Industry"]["score"] == 100

    def test_single_digit_size_does_not_match_range_by_containment(self):
        criteria = [
            ICPCriterion(name="Size", data_type=CriterionDataType.COMPANY_SIZE, weight=5, ideal_values=["10-50"]),
        ]
        result = score_criteria(criteria, features_for(company_size="1"))

        assert result.score == 0.0
        assert result.breakdown["Size"]["note"] == "Outside ideal company size (1)"

    def test_company_size_inside_range(self):
        criteria = [
            ICPCriterion(name="Size", data_type=CriterionDataType.COMPANY_SIZE, weight=5, ideal_values=["51-200"]),
        ]
        result = score_criteria(criteria, features_for(company_size="120"))

        assert result.score == 100.0
        assert result.breakdown["Size"]["note"] == "Within ideal company size range (51-200)"

    @pytest.mark.parametrize("timeline,expected", [
        ("ASAP", 100.0),
        ("within 1 month", 100.0),
        ("4 months", 33.33),
        ("6 months", 0.0),
    ])
    def test_timeline_decays_with_distance(self, timeline, expected):
        criteria = [
            ICPCriterion(name="Timeline", data_type=CriterionDataType.TIMELINE, weight=5,
                         ideal_values=["within 3 months"]),
        ]
        result = score_criteria(criteria, features_for(timeline=timeline))

        assert result.score == expected

    def test_custom_question_matches_by_containment(self):
        criteria = [
            ICPCriterion(name="Use case", data_type=CriterionDataType.CUSTOM, weight=4,
                         ideal_values=["lead routing"]),
        ]
        result = score_criteria(criteria, features_for(custom_fields={"Use case": "Automated lead routing"}))

        assert result.score == 100.0
        assert result.breakdown["Use case"]["note"] == "Matches ideal Use case (lead routing)"

    @pytest.mark.parametrize("data_type,ideal,field,value", [
        (CriterionDataType.JOB_TITLE, "CTO", "job_title", "Director of Sales"),
        (CriterionDataType.INDUSTRY, "IT", "industry", "Digital Marketing"),
        (CriterionDataType.JOB_TITLE, "VP", "job_title", "MVP Engineer"),
    ])
    def test_containment_needs_whole_words(self, data_type, ideal, field, value):
        criteria = [ICPCriterion(name="Fit", data_type=data_type, weight=5, ideal_values=[ideal])]

        result = score_criteria(criteria, features_for(**{field: value}))

        assert result.score == 0.0
        assert result.breakdown["Fit"]["note"].startswith("Outside ideal")

    def test_title_containing_ideal_word_matches(self):
        criteria = [
            ICPCriterion(name="Title", data_type=CriterionDataType.JOB_TITLE, weight=5, ideal_values=["CTO"]),
        ]
        result = score_criteria(criteria, features_for(job_title="CTO & Co-Founder"))

        assert result.score == 100.0
        assert result.breakdown["Title"]["note"] == "Matches ideal job title (CTO)"

    def test_criterion_without_ideals_rewards_any_answer(self):
        criteria = [
            ICPCriterion(name="Title", data_type=CriterionDataType.JOB_TITLE, weight=3, ideal_values=[]),
        ]
        result = score_criteria(criteria, features_for(job_title="Office Manager"))

        assert result.score == 100.0

    def test_required_miss_is_reported(self):
        criteria = [
            ICPCriterion(name="Budget", data_type=CriterionDataType.BUDGET, weight=2,
                         ideal_values=["$50k+"], is_required=True),
            ICPCriterion(name="Industry", data_type=CriterionDataType.INDUSTRY, weight=8, ideal_values=["SaaS"]),
        ]
        result = score_criteria(criteria, features_for(budget_range="$5,000", industry="SaaS"))

        assert result.score == 80.0
        assert result.required_misses == ["Budget"]

    def test_unknown_required_criterion_is_not_a_miss(self):
        criteria = [
            ICPCriterion(name="Budget", data_type=CriterionDataType.BUDGET, weight=2,
                         ideal_values=["$50k+"], is_required=True),
        ]
        result = score_criteria(criteria, features_for(industry="SaaS"))

        assert result.required_misses == []


# ============================================================================
# TEST: Weight scales
# ============================================================================

class TestWeightConversion:

    @pytest.mark.parametrize("external,internal", [
        (25, 3),
        (15, 2),
        (0, 1),
        (104, 10),
        (70, 7),
        (100, 10),
    ])
    def test_to_internal(self, external, internal):
        assert to_internal_weight(external) == internal

    def test_to_external(self):
        assert to_external_weight(7) == 70
        assert to_external_weight(1) == 10
