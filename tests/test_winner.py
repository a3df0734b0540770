"""Tests for uplift.evaluation.winner module."""

from datetime import UTC, datetime, timedelta

import pytest

from uplift.core.models import Arm
from uplift.evaluation.winner import WinnerSelector, calculate_lift

BASE_TIME = datetime(2025, 6, 1, tzinfo=UTC)


def arm(arm_id: str, views: int, conversions: int, created_offset: int = 0) -> Arm:
    return Arm(
        id=arm_id,
        cumulative_views=views,
        cumulative_conversions=conversions,
        created_at=BASE_TIME + timedelta(hours=created_offset),
    )


class TestCalculateLift:
    def test_positive_lift(self):
        assert calculate_lift(0.05, 0.06) == pytest.approx(20.0)

    def test_negative_lift(self):
        assert calculate_lift(0.10, 0.08) == pytest.approx(-20.0)


class TestSelectWinner:
    """Tests for WinnerSelector.select_winner."""

    def test_clear_winner_is_ready_to_scale(self, scenario_a_experiment):
        exp = scenario_a_experiment
        verdict = WinnerSelector().select_winner(exp.control, exp.variants)

        assert verdict.winner_id == "hero-variant"
        assert verdict.ready_to_scale is True
        assert verdict.reason == "ready_to_scale"
        assert verdict.confidence_percent == 99.0
        assert verdict.lift == pytest.approx((0.092 / 0.055 - 1) * 100)

    def test_small_variant_sample_blocks_scaling(self):
        verdict = WinnerSelector().select_winner(arm("c", 900, 50), [arm("v", 120, 7)])

        assert verdict.ready_to_scale is False
        assert verdict.insufficient_data is True
        assert verdict.reason == "insufficient_sample"
        assert verdict.winner_id is None

    def test_undersampled_control_blocks_scaling(self):
        verdict = WinnerSelector().select_winner(arm("c", 90, 40), [arm("v", 1000, 90)])
        assert verdict.reason == "insufficient_sample"

    def test_no_variants(self):
        verdict = WinnerSelector().select_winner(arm("c", 1000, 50), [])

        assert verdict.winner_id is None
        assert verdict.reason == "no_variants"

    def test_control_rate_zero(self):
        selector = WinnerSelector(min_sample_conversions=0)
        verdict = selector.select_winner(arm("c", 1000, 0), [arm("v", 1000, 50)])

        assert verdict.reason == "control_rate_zero"
        assert verdict.ready_to_scale is False

    def test_picks_highest_lift(self):
        verdict = WinnerSelector().select_winner(
            arm("c", 1000, 50),
            [arm("a", 1000, 60), arm("b", 1000, 110), arm("d", 1000, 80)],
        )

        assert verdict.winner_id == "b"
        assert [c.arm_id for c in verdict.candidates] == ["b", "d", "a"]

    def test_tie_goes_to_more_views(self):
        verdict = WinnerSelector().select_winner(
            arm("c", 1000, 50),
            [arm("small", 1000, 100), arm("large", 2000, 200)],
        )
        assert verdict.winner_id == "large"

    def test_tie_with_equal_views_goes_to_earliest(self):
        verdict = WinnerSelector().select_winner(
            arm("c", 1000, 50),
            [arm("late", 1000, 100, created_offset=5), arm("early", 1000, 100, created_offset=1)],
        )
        assert verdict.winner_id == "early"

    def test_negative_lift_is_never_ready(self):
        verdict = WinnerSelector().select_winner(arm("c", 1000, 100), [arm("v", 1000, 50)])

        assert verdict.winner_id == "v"
        assert verdict.lift < 0
        assert verdict.ready_to_scale is False

    def test_not_significant(self):
        verdict = WinnerSelector().select_winner(arm("c", 1000, 50), [arm("v", 1000, 55)])

        assert verdict.reason == "not_significant"
        assert verdict.ready_to_scale is False

    def test_below_confidence_threshold(self, scenario_a_experiment):
        exp = scenario_a_experiment
        verdict = WinnerSelector(scale_confidence_threshold=99.9).select_winner(
            exp.control, exp.variants
        )
        assert verdict.reason == "below_confidence_threshold"

    def test_below_min_improvement(self, scenario_a_experiment):
        exp = scenario_a_experiment
        verdict = WinnerSelector().select_winner(
            exp.control, exp.variants, min_improvement=80.0
        )

        assert verdict.reason == "below_min_improvement"
        assert verdict.winner_id == "hero-variant"

    def test_overrides_take_precedence(self, scenario_a_experiment):
        exp = scenario_a_experiment
        selector = WinnerSelector(min_improvement=80.0, scale_confidence_threshold=99.9)
        verdict = selector.select_winner(
            exp.control,
            exp.variants,
            min_improvement=5.0,
            scale_confidence_threshold=95.0,
        )
        assert verdict.ready_to_scale is True
