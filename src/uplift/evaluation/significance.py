"""Two-proportion significance testing for experiment arms.

Compares a variant arm to its control with a chi-square test on the 2x2
contingency table (arm x converted / not converted), one degree of freedom.

The statistic is mapped onto four coarse confidence buckets using fixed
critical values rather than a continuous p-value:

    chi-square > 10.828  -> 99.9 % (p < 0.001)
    chi-square >  6.635  -> 99.0 % (p < 0.01)
    chi-square >  3.841  -> 95.0 % (p < 0.05)
    otherwise            -> not significant, reported as 90 % (p bucket 0.1)

The buckets are enough for the threshold-gated decisions the engine makes,
but a result sitting just under a boundary is reported one bucket low.

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from uplift.core.models import Arm

# (critical value, confidence percent, p-value bucket), strongest first
CRITICAL_VALUES: tuple[tuple[float, float, float], ...] = (
    (10.828, 99.9, 0.001),
    (6.635, 99.0, 0.01),
    (3.841, 95.0, 0.05),
)
NOT_SIGNIFICANT_CONFIDENCE = 90.0
NOT_SIGNIFICANT_P_BUCKET = 0.1

Z_SCORES: dict[float, float] = {
    0.95: 1.96,
    0.99: 2.576,
}


@dataclass(frozen=True)
class ConfidenceInterval:
    """Normal-approximation interval around an arm's conversion rate."""

    rate: float
    lower: float
    upper: float
    level: float
    insufficient_data: bool = False

    @classmethod
    def insufficient(cls, level: float) -> ConfidenceInterval:
        return cls(rate=0.0, lower=0.0, upper=0.0, level=level, insufficient_data=True)


@dataclass(frozen=True)
class SignificanceResult:
    """Outcome of comparing one variant against control.

    Attributes:
        chi_square: Test statistic (0.0 when data is insufficient).
        confidence_percent: Bucketed confidence level.
        significant: True when chi_square clears the 95 % critical value.
        p_value_bucket: Upper bound of the p-value bucket.
        confidence_interval: Interval for the variant's rate.
        insufficient_data: Inputs were degenerate; nothing was tested.
    """

    chi_square: float
    confidence_percent: float
    significant: bool
    p_value_bucket: float
    confidence_interval: ConfidenceInterval
    insufficient_data: bool = False

    def to_dict(self) -> dict:
        return {
            "chi_square": round(self.chi_square, 4),
            "confidence_percent": self.confidence_percent,
            "significant": self.significant,
            "p_value_bucket": self.p_value_bucket,
            "insufficient_data": self.insufficient_data,
            "confidence_interval": {
                "rate": self.confidence_interval.rate,
                "lower": self.confidence_interval.lower,
                "upper": self.confidence_interval.upper,
                "level": self.confidence_interval.level,
            },
        }


def chi_square_statistic(
    control_conversions: int,
    control_views: int,
    variant_conversions: int,
    variant_views: int,
) -> float:
    """Pearson chi-square over the four cells of the 2x2 table.

    Expected counts assume both arms share the pooled conversion rate.
    Callers must ensure both arms have views and that the pooled rate is
    strictly between 0 and 1.
    """
    total_views = control_views + variant_views
    total_conversions = control_conversions + variant_conversions
    total_misses = total_views - total_conversions

    observed = (
        (control_conversions, control_views - control_conversions, control_views),
        (variant_conversions, variant_views - variant_conversions, variant_views),
    )
    statistic = 0.0
    for conversions, misses, views in observed:
        expected_conversions = views * total_conversions / total_views
        expected_misses = views * total_misses / total_views
        statistic += (conversions - expected_conversions) ** 2 / expected_conversions
        statistic += (misses - expected_misses) ** 2 / expected_misses
    return statistic


def bucket_confidence(chi_square: float) -> tuple[float, float, bool]:
    """Map a statistic to (confidence percent, p bucket, significant)."""
    for critical, confidence, p_bucket in CRITICAL_VALUES:
        if chi_square > critical:
            return confidence, p_bucket, True
    return NOT_SIGNIFICANT_CONFIDENCE, NOT_SIGNIFICANT_P_BUCKET, False


class SignificanceEvaluator:
    """Stateless chi-square comparison of two arms.

    Safe to share between concurrent experiment evaluations.
    """

    def __init__(self, interval_level: float = 0.95) -> None:
        if interval_level not in Z_SCORES:
            raise ValueError(f"Unsupported confidence level {interval_level}")
        self.interval_level = interval_level

    def evaluate(self, control: Arm, variant: Arm) -> SignificanceResult:
        """Test whether variant and control conversion rates differ.

        Zero views or zero conversions on either arm, or no misses across
        both arms, is reported as insufficient data and never significant.
        """
        interval = self.confidence_interval(
            variant.cumulative_conversions,
            variant.cumulative_views,
            self.interval_level,
        )
        total_views = control.cumulative_views + variant.cumulative_views
        total_conversions = control.cumulative_conversions + variant.cumulative_conversions

        if (
            control.cumulative_views == 0
            or variant.cumulative_views == 0
            or control.cumulative_conversions == 0
            or variant.cumulative_conversions == 0
            or total_conversions == total_views
        ):
            return SignificanceResult(
                chi_square=0.0,
                confidence_percent=0.0,
                significant=False,
                p_value_bucket=1.0,
                confidence_interval=interval,
                insufficient_data=True,
            )

        statistic = chi_square_statistic(
            control.cumulative_conversions,
            control.cumulative_views,
            variant.cumulative_conversions,
            variant.cumulative_views,
        )
        confidence, p_bucket, significant = bucket_confidence(statistic)
        return SignificanceResult(
            chi_square=statistic,
            confidence_percent=confidence,
            significant=significant,
            p_value_bucket=p_bucket,
            confidence_interval=interval,
        )

    @staticmethod
    def confidence_interval(
        conversions: int,
        views: int,
        level: float = 0.95,
    ) -> ConfidenceInterval:
        """Normal-approximation interval ``rate ± z·sqrt(rate(1-rate)/views)``.

        Bounds are clamped to [0, 1]. Zero views yields an interval flagged
        as insufficient data.

        Raises:
            ValueError: For a level other than 0.95 or 0.99.
        """
        z = Z_SCORES.get(level)
        if z is None:
            raise ValueError(f"Unsupported confidence level {level}")
        if views <= 0:
            return ConfidenceInterval.insufficient(level)

        rate = conversions / views
        margin = z * math.sqrt(rate * (1 - rate) / views)
        return ConfidenceInterval(
            rate=rate,
            lower=max(0.0, rate - margin),
            upper=min(1.0, rate + margin),
            level=level,
        )
