"""Tests for uplift.evaluation.significance module."""

import math

import pytest

from uplift.core.models import Arm
from uplift.evaluation.significance import (
    CRITICAL_VALUES,
    SignificanceEvaluator,
    bucket_confidence,
    chi_square_statistic,
)


def arm(arm_id: str, views: int, conversions: int) -> Arm:
    return Arm(id=arm_id, cumulative_views=views, cumulative_conversions=conversions)


class TestChiSquareStatistic:
    """Tests for the 2x2 chi-square statistic."""

    def test_identical_rates_give_zero(self):
        assert chi_square_statistic(50, 1000, 50, 1000) == pytest.approx(0.0)

    def test_sums_all_four_cells(self):
        # pooled rate 147/2000; each arm deviates by 18.5 conversions
        expected = 2 * (18.5**2 / 73.5 + 18.5**2 / 926.5)
        assert chi_square_statistic(55, 1000, 92, 1000) == pytest.approx(expected)

    def test_symmetric_in_arm_order(self):
        forward = chi_square_statistic(55, 1000, 92, 1000)
        backward = chi_square_statistic(92, 1000, 55, 1000)
        assert forward == pytest.approx(backward)


class TestBucketConfidence:
    """Tests for the coarse confidence buckets."""

    def test_critical_values_descend(self):
        criticals = [c for c, _, _ in CRITICAL_VALUES]
        assert criticals == sorted(criticals, reverse=True)
        assert criticals == [10.828, 6.635, 3.841]

    @pytest.mark.parametrize(
        ("statistic", "confidence", "significant"),
        [
            (11.0, 99.9, True),
            (10.0, 99.0, True),
            (4.0, 95.0, True),
            (3.841, 90.0, False),
            (0.0, 90.0, False),
        ],
    )
    def test_buckets(self, statistic, confidence, significant):
        result_confidence, _, result_significant = bucket_confidence(statistic)
        assert result_confidence == confidence
        assert result_significant is significant

    def test_not_significant_bucket_reports_p_of_point_one(self):
        _, p_bucket, _ = bucket_confidence(1.0)
        assert p_bucket == 0.1


class TestEvaluate:
    """Tests for SignificanceEvaluator.evaluate."""

    def test_clear_winner_is_significant_at_99(self):
        result = SignificanceEvaluator().evaluate(arm("c", 1000, 55), arm("v", 1000, 92))

        assert result.chi_square == pytest.approx(10.052, abs=0.01)
        assert result.significant is True
        assert result.confidence_percent == 99.0
        assert result.p_value_bucket == 0.01
        assert result.insufficient_data is False

    def test_small_variant_sample_not_significant(self):
        result = SignificanceEvaluator().evaluate(arm("c", 900, 50), arm("v", 120, 7))

        assert result.chi_square < 3.841
        assert result.significant is False
        assert result.confidence_percent == 90.0

    def test_identical_rates_equal_views(self):
        result = SignificanceEvaluator().evaluate(arm("c", 1000, 50), arm("v", 1000, 50))

        assert result.chi_square == pytest.approx(0.0)
        assert result.significant is False

    @pytest.mark.parametrize(
        ("control", "variant"),
        [
            ((0, 0), (1000, 50)),
            ((1000, 50), (0, 0)),
            ((1000, 0), (1000, 50)),
            ((1000, 50), (1000, 0)),
            ((10, 10), (10, 10)),
        ],
    )
    def test_degenerate_input_is_insufficient(self, control, variant):
        result = SignificanceEvaluator().evaluate(arm("c", *control), arm("v", *variant))

        assert result.insufficient_data is True
        assert result.significant is False
        assert result.chi_square == 0.0

    def test_interval_is_for_variant(self):
        result = SignificanceEvaluator().evaluate(arm("c", 1000, 55), arm("v", 1000, 92))
        assert result.confidence_interval.rate == pytest.approx(0.092)

    def test_to_dict(self):
        result = SignificanceEvaluator().evaluate(arm("c", 1000, 55), arm("v", 1000, 92))
        data = result.to_dict()

        assert data["significant"] is True
        assert data["confidence_percent"] == 99.0
        assert set(data["confidence_interval"]) == {"rate", "lower", "upper", "level"}

    def test_rejects_unsupported_level(self):
        with pytest.raises(ValueError, match="Unsupported"):
            SignificanceEvaluator(interval_level=0.9)


class TestConfidenceInterval:
    """Tests for the normal-approximation interval."""

    def test_known_values_at_95(self):
        interval = SignificanceEvaluator.confidence_interval(55, 1000, 0.95)
        margin = 1.96 * math.sqrt(0.055 * 0.945 / 1000)

        assert interval.rate == pytest.approx(0.055)
        assert interval.lower == pytest.approx(0.055 - margin)
        assert interval.upper == pytest.approx(0.055 + margin)

    def test_99_is_wider_than_95(self):
        narrow = SignificanceEvaluator.confidence_interval(55, 1000, 0.95)
        wide = SignificanceEvaluator.confidence_interval(55, 1000, 0.99)
        assert wide.lower < narrow.lower
        assert wide.upper > narrow.upper

    @pytest.mark.parametrize(
        ("conversions", "views"),
        [(0, 100), (1, 2), (100, 100), (3, 1000), (999, 1000)],
    )
    def test_bounds_bracket_rate_and_stay_in_unit_range(self, conversions, views):
        interval = SignificanceEvaluator.confidence_interval(conversions, views, 0.99)
        assert 0.0 <= interval.lower <= interval.rate <= interval.upper <= 1.0

    def test_zero_views_is_insufficient(self):
        interval = SignificanceEvaluator.confidence_interval(0, 0)
        assert interval.insufficient_data is True

    def test_rejects_unsupported_level(self):
        with pytest.raises(ValueError):
            SignificanceEvaluator.confidence_interval(5, 100, 0.9)
