"""Winner selection and scaling eligibility.

Given a control arm and its variants, the selector computes each variant's
lift over control, tests it for significance and picks the variant with
the highest lift. The pick is only eligible for scaling when the test was
significant at the configured confidence and the lift clears the
minimum-improvement floor.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from uplift.core.logging import get_logger
from uplift.core.models import Arm
from uplift.evaluation.significance import SignificanceEvaluator, SignificanceResult

_logger = get_logger("evaluation.winner")

# Lifts equal at this many decimals are treated as a tie
LIFT_TIE_PRECISION = 4


@dataclass(frozen=True)
class VariantComparison:
    arm_id: str
    lift: float
    views: int
    significance: SignificanceResult


@dataclass(frozen=True)
class WinnerSelection:
    """Verdict for one experiment.

    Attributes:
        winner_id: Best variant, or None when no winner can be declared.
        lift: Winner's lift over control in percent.
        significance: Winner's significance test.
        ready_to_scale: Winner cleared every scaling gate.
        insufficient_data: Sample floors were not met; nothing was picked.
        reason: Short machine-friendly explanation of the verdict.
        candidates: Every variant's comparison, best first.
    """

    winner_id: str | None
    lift: float | None
    significance: SignificanceResult | None
    ready_to_scale: bool
    insufficient_data: bool
    reason: str
    candidates: tuple[VariantComparison, ...] = field(default_factory=tuple)

    @property
    def confidence_percent(self) -> float | None:
        return self.significance.confidence_percent if self.significance else None


def calculate_lift(control_rate: float, variant_rate: float) -> float:
    """Relative improvement of variant over control, in percent."""
    return (variant_rate / control_rate - 1.0) * 100.0


class WinnerSelector:
    """Picks the best-performing variant and decides whether it may scale.

    Example:
        selector = WinnerSelector(min_sample_conversions=30)
        verdict = selector.select_winner(experiment.control, experiment.variants)
        if verdict.ready_to_scale:
            ...
    """

    def __init__(
        self,
        evaluator: SignificanceEvaluator | None = None,
        min_sample_conversions: int = 30,
        min_sample_views: int = 100,
        min_improvement: float = 5.0,
        scale_confidence_threshold: float = 95.0,
    ) -> None:
        self.evaluator = evaluator or SignificanceEvaluator()
        self.min_sample_conversions = min_sample_conversions
        self.min_sample_views = min_sample_views
        self.min_improvement = min_improvement
        self.scale_confidence_threshold = scale_confidence_threshold

    def _undersampled(self, arms: list[Arm]) -> list[str]:
        return [
            arm.id
            for arm in arms
            if arm.cumulative_conversions < self.min_sample_conversions
            or arm.cumulative_views < self.min_sample_views
        ]

    def select_winner(
        self,
        control: Arm,
        variants: list[Arm],
        *,
        min_improvement: float | None = None,
        scale_confidence_threshold: float | None = None,
    ) -> WinnerSelection:
        """Choose the winning variant.

        Ties on lift (to LIFT_TIE_PRECISION decimals) go to the variant with
        more views, then the one created first, then the lower id.

        Args:
            control: Control arm.
            variants: Competing arms.
            min_improvement: Override for the lift floor, in percent.
            scale_confidence_threshold: Override for the required confidence.
        """
        floor = self.min_improvement if min_improvement is None else min_improvement
        threshold = (
            self.scale_confidence_threshold
            if scale_confidence_threshold is None
            else scale_confidence_threshold
        )

        if not variants:
            return WinnerSelection(None, None, None, False, True, "no_variants")

        undersampled = self._undersampled([control, *variants])
        if undersampled:
            _logger.info(
                "winner_withheld_low_sample",
                control_id=control.id,
                arms=undersampled,
                min_conversions=self.min_sample_conversions,
                min_views=self.min_sample_views,
            )
            return WinnerSelection(None, None, None, False, True, "insufficient_sample")

        if control.rate == 0.0:
            return WinnerSelection(None, None, None, False, True, "control_rate_zero")

        comparisons = [
            VariantComparison(
                arm_id=variant.id,
                lift=calculate_lift(control.rate, variant.rate),
                views=variant.cumulative_views,
                significance=self.evaluator.evaluate(control, variant),
            )
            for variant in variants
        ]
        created = {variant.id: variant.created_at for variant in variants}
        comparisons.sort(
            key=lambda c: (
                -round(c.lift, LIFT_TIE_PRECISION),
                -c.views,
                created[c.arm_id],
                c.arm_id,
            )
        )
        best = comparisons[0]
        significance = best.significance

        if not significance.significant:
            reason = "not_significant"
        elif significance.confidence_percent < threshold:
            reason = "below_confidence_threshold"
        elif best.lift < floor:
            reason = "below_min_improvement"
        else:
            reason = "ready_to_scale"
        ready = reason == "ready_to_scale"

        _logger.debug(
            "winner_selected",
            winner_id=best.arm_id,
            lift=round(best.lift, 2),
            chi_square=round(significance.chi_square, 3),
            confidence=significance.confidence_percent,
            ready_to_scale=ready,
        )
        return WinnerSelection(
            winner_id=best.arm_id,
            lift=best.lift,
            significance=significance,
            ready_to_scale=ready,
            insufficient_data=False,
            reason=reason,
            candidates=tuple(comparisons),
        )
