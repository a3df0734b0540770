"""Statistical evaluation of experiments."""

from uplift.evaluation.significance import (
    ConfidenceInterval,
    SignificanceEvaluator,
    SignificanceResult,
)
from uplift.evaluation.winner import WinnerSelection, WinnerSelector, calculate_lift

__all__ = [
    "ConfidenceInterval",
    "SignificanceEvaluator",
    "SignificanceResult",
    "WinnerSelection",
    "WinnerSelector",
    "calculate_lift",
]
