"""Cycle orchestration."""

from uplift.engine.cycle import CycleError, CycleReport, CycleRunner, ExperimentVerdict

__all__ = ["CycleError", "CycleReport", "CycleRunner", "ExperimentVerdict"]
