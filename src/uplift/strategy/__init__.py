"""Iteration strategy optimization."""

from uplift.strategy.optimizer import (
    ActionPlan,
    Projection,
    StrategyOptimizer,
    StrategyRecommendation,
)

__all__ = ["ActionPlan", "Projection", "StrategyOptimizer", "StrategyRecommendation"]
