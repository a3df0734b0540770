"""Uplift: experiment evaluation and pattern lifecycle engine."""

__version__ = "0.1.0"
