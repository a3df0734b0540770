"""Iteration outcome tracking."""

from uplift.tracking.effectiveness import EffectivenessTracker, TargetOutcome

__all__ = ["EffectivenessTracker", "TargetOutcome"]
