"""Exception hierarchy for the Uplift engine.

Every engine exception inherits from UpliftError so callers can catch
broadly (UpliftError) or narrowly (e.g. IllegalTransitionError). The
hierarchy is flat on purpose: one level under the root.
"""

from __future__ import annotations


class UpliftError(Exception):
    """Base exception for all engine errors."""


class ConfigurationError(UpliftError):
    """Raised when an engine configuration file cannot be loaded or validated."""


class InvalidMetricsError(UpliftError):
    """Raised when counts would break ``0 <= conversions <= views``.

    Examples: a negative delta, or a conversion delta larger than the
    views the arm has accumulated.
    """


class ExperimentNotFoundError(UpliftError):
    """Raised when an experiment id is not registered."""


class PatternNotFoundError(UpliftError):
    """Raised when a pattern id is missing from the registry."""


class IllegalTransitionError(UpliftError):
    """Raised when a lifecycle transition outside the allowed chain is requested.

    Carries the pattern id and both statuses for reporting.
    """

    def __init__(self, pattern_id: str, current: str, requested: str) -> None:
        self.pattern_id = pattern_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Pattern {pattern_id}: illegal transition {current} -> {requested}"
        )


class PromotionGateError(UpliftError):
    """Raised when a transition is legal but the evidence gate is not met.

    A pattern may only become validated (and later production) after a
    recorded significance result cleared the confidence threshold and the
    minimum-improvement floor.
    """


class MutationError(UpliftError):
    """Raised by content mutators for a failed mutation of one target."""

    def __init__(self, target_id: str, message: str, retriable: bool = True) -> None:
        self.target_id = target_id
        self.retriable = retriable
        super().__init__(f"{target_id}: {message}")


class StateCorruptionError(UpliftError):
    """Raised when persisted engine state cannot be parsed."""


__all__ = [
    "ConfigurationError",
    "ExperimentNotFoundError",
    "IllegalTransitionError",
    "InvalidMetricsError",
    "MutationError",
    "PatternNotFoundError",
    "PromotionGateError",
    "StateCorruptionError",
    "UpliftError",
]
