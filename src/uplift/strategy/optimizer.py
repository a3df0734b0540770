"""Iteration strategy analysis.

Reads the iteration history and recommends how the next cycles should run:
cadence, thresholds and what to work on. Three signals drive it:

    velocity       mean quality_delta per iteration in the trailing window
    effectiveness  mean lift of patterns that reached production in the window
    roi            proxy revenue per content mutation in the window

Each signal also gets a trend label from the last two iterations; a change
of more than 20 % either way counts as movement.

Stagnation (|quality_delta| below min_improvement for the last N
iterations) switches the engine into exploratory mode. The remedies lower
the improvement floor, widen the candidate pool and lengthen the cycle.
Stagnation never speeds the cadence up.

Projections are plain linear extrapolations of current velocity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from uplift.core.config import StrategyConfig
from uplift.core.logging import get_logger
from uplift.core.models import (
    IterationFrequency,
    IterationRecord,
    Pattern,
    StrategyParams,
    TrendSnapshot,
)
from uplift.lifecycle.candidates import (
    CandidateGenerator,
    CandidateProposal,
    CatalogCandidateGenerator,
)

_logger = get_logger("strategy")

TREND_CHANGE_RATE = 0.2
PROJECTION_HORIZONS = (1, 3, 6)

# Throughput relative to the bi-weekly baseline
FREQUENCY_MULTIPLIERS: dict[IterationFrequency, float] = {
    IterationFrequency.WEEKLY: 2.0,
    IterationFrequency.BI_WEEKLY: 1.0,
    IterationFrequency.MONTHLY: 0.5,
}

_SLOWER = {
    IterationFrequency.WEEKLY: IterationFrequency.BI_WEEKLY,
    IterationFrequency.BI_WEEKLY: IterationFrequency.MONTHLY,
    IterationFrequency.MONTHLY: IterationFrequency.MONTHLY,
}

_RANK = {
    IterationFrequency.WEEKLY: 0,
    IterationFrequency.BI_WEEKLY: 1,
    IterationFrequency.MONTHLY: 2,
}

Trend = Literal[
    "accelerating",
    "decelerating",
    "improving",
    "declining",
    "stable",
    "insufficient_data",
]


class ActionPlan(BaseModel):
    immediate: list[str] = Field(default_factory=list)
    short_term: list[str] = Field(default_factory=list)
    long_term: list[str] = Field(default_factory=list)


class Projection(BaseModel):
    horizon: int
    projected_gain: float


class StrategyRecommendation(BaseModel):
    """Everything the optimizer concluded from one analysis."""

    status: Literal["ok", "insufficient_data"]
    iterations_analyzed: int = 0
    velocity: float = 0.0
    effectiveness: float = 0.0
    roi: float = 0.0
    velocity_trend: Trend = "insufficient_data"
    effectiveness_trend: Trend = "insufficient_data"
    roi_trend: Trend = "insufficient_data"
    stagnant: bool = False
    exploratory_mode: bool = False
    confidence: Literal["low", "moderate", "high"] = "low"
    recommended_frequency: IterationFrequency
    reasoning: list[str] = Field(default_factory=list)
    action_plan: ActionPlan = Field(default_factory=ActionPlan)
    projections: list[Projection] = Field(default_factory=list)
    expected_monthly_gain: float = 0.0
    revised_params: StrategyParams
    candidates: list[CandidateProposal] = Field(default_factory=list)
    snapshot: TrendSnapshot | None = None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def trend_label(previous: float, latest: float, up: str, down: str) -> str:
    """Label the move from ``previous`` to ``latest`` using a ±20 % band."""
    if previous == 0:
        if latest > 0:
            return up
        if latest < 0:
            return down
        return "stable"
    change_rate = (latest - previous) / abs(previous)
    if change_rate > TREND_CHANGE_RATE:
        return up
    if change_rate < -TREND_CHANGE_RATE:
        return down
    return "stable"


def _record_roi(record: IterationRecord) -> float:
    if record.mutation_count == 0:
        return 0.0
    return record.revenue_impact / record.mutation_count


class StrategyOptimizer:
    """Turns iteration history into a StrategyRecommendation.

    Example:
        optimizer = StrategyOptimizer(config.strategy)
        recommendation = optimizer.analyze(state.history, state.strategy_params)
        state.strategy_params = recommendation.revised_params
    """

    def __init__(
        self,
        config: StrategyConfig | None = None,
        candidate_generator: CandidateGenerator | None = None,
    ) -> None:
        self.config = config or StrategyConfig()
        self.candidate_generator = candidate_generator or CatalogCandidateGenerator()

    def is_stagnant(self, history: Sequence[IterationRecord], min_improvement: float) -> bool:
        """True when each of the last N iterations moved less than min_improvement."""
        needed = self.config.stagnation_iterations
        if len(history) < needed:
            return False
        return all(abs(r.quality_delta) < min_improvement for r in history[-needed:])

    def analyze(
        self,
        history: Sequence[IterationRecord],
        params: StrategyParams | None = None,
        trailing_window: int | None = None,
        production_lifts: Iterable[float] | None = None,
        patterns: Iterable[Pattern] = (),
        now: datetime | None = None,
    ) -> StrategyRecommendation:
        """Analyze history and recommend the next strategy.

        Args:
            history: Iteration records, oldest first.
            params: Parameters currently in force.
            trailing_window: Iterations to average over; defaults to config.
            production_lifts: Overrides the production lifts recorded in the
                window when computing effectiveness.
            patterns: Current registry, so exploratory proposals skip
                patterns that already exist.
            now: Timestamp for the trend snapshot.
        """
        params = params or self.config.params
        window_size = trailing_window or self.config.trailing_window
        history = list(history)

        if len(history) < 2:
            _logger.info("strategy_insufficient_data", iterations=len(history))
            return StrategyRecommendation(
                status="insufficient_data",
                iterations_analyzed=len(history),
                recommended_frequency=params.iteration_frequency,
                reasoning=["Fewer than two completed iterations; no trend to analyze yet"],
                action_plan=ActionPlan(
                    immediate=["Complete another iteration before adjusting strategy"]
                ),
                revised_params=params.model_copy(),
            )

        window = history[-window_size:]
        velocity = _mean([r.quality_delta for r in window])
        lifts = (
            list(production_lifts)
            if production_lifts is not None
            else [lift for r in window for lift in r.production_lifts]
        )
        effectiveness = _mean(lifts)
        total_mutations = sum(r.mutation_count for r in window)
        roi = sum(r.revenue_impact for r in window) / total_mutations if total_mutations else 0.0

        previous, latest = history[-2], history[-1]
        velocity_trend = trend_label(
            previous.quality_delta, latest.quality_delta, "accelerating", "decelerating"
        )
        effectiveness_trend = trend_label(
            _mean(previous.production_lifts),
            _mean(latest.production_lifts),
            "improving",
            "declining",
        )
        roi_trend = trend_label(
            _record_roi(previous), _record_roi(latest), "improving", "declining"
        )

        stagnant = self.is_stagnant(history, params.min_improvement)
        frequency = self._recommend_frequency(params, stagnant, velocity_trend, roi_trend)
        revised = self._revise_params(params, stagnant, frequency)

        candidates: list[CandidateProposal] = []
        if stagnant:
            candidates = self.candidate_generator.generate(
                patterns, self.config.exploratory_candidates
            )

        data_points = len(history)
        confidence: Literal["low", "moderate", "high"]
        if data_points >= 10:
            confidence = "high"
        elif data_points >= 5:
            confidence = "moderate"
        else:
            confidence = "low"

        reasoning = self._reasoning(
            stagnant, frequency, params, revised, velocity_trend, effectiveness_trend, roi_trend
        )
        action_plan = self._action_plan(
            stagnant, frequency, effectiveness_trend, candidates, confidence
        )

        snapshot = TrendSnapshot(
            date=now or datetime.now(UTC),
            velocity=velocity,
            effectiveness=effectiveness,
            roi=roi,
            strategy_params=revised,
        )

        _logger.info(
            "strategy_analyzed",
            velocity=round(velocity, 3),
            effectiveness=round(effectiveness, 3),
            roi=round(roi, 3),
            stagnant=stagnant,
            frequency=frequency.value,
        )
        return StrategyRecommendation(
            status="ok",
            iterations_analyzed=len(window),
            velocity=velocity,
            effectiveness=effectiveness,
            roi=roi,
            velocity_trend=velocity_trend,
            effectiveness_trend=effectiveness_trend,
            roi_trend=roi_trend,
            stagnant=stagnant,
            exploratory_mode=stagnant,
            confidence=confidence,
            recommended_frequency=frequency,
            reasoning=reasoning,
            action_plan=action_plan,
            projections=[
                Projection(horizon=h, projected_gain=velocity * h) for h in PROJECTION_HORIZONS
            ],
            expected_monthly_gain=velocity * FREQUENCY_MULTIPLIERS[frequency],
            revised_params=revised,
            candidates=candidates,
            snapshot=snapshot,
        )

    def _recommend_frequency(
        self,
        params: StrategyParams,
        stagnant: bool,
        velocity_trend: str,
        roi_trend: str,
    ) -> IterationFrequency:
        current = params.iteration_frequency
        if stagnant:
            return _SLOWER[current]
        if roi_trend == "improving" and velocity_trend == "accelerating":
            return IterationFrequency.WEEKLY
        if velocity_trend == "decelerating" or roi_trend == "declining":
            # Slow down, never speed up, while returns are falling
            return max(current, IterationFrequency.BI_WEEKLY, key=_RANK.__getitem__)
        return current

    def _revise_params(
        self,
        params: StrategyParams,
        stagnant: bool,
        frequency: IterationFrequency,
    ) -> StrategyParams:
        if not stagnant:
            return params.model_copy(update={"iteration_frequency": frequency})
        lowered = max(
            self.config.min_improvement_floor,
            params.min_improvement * self.config.min_improvement_step,
        )
        lengthened = min(
            self.config.max_cycle_duration_days,
            max(params.min_cycle_duration_days + 7, frequency.days),
        )
        return params.model_copy(
            update={
                "min_improvement": lowered,
                "min_cycle_duration_days": max(lengthened, params.min_cycle_duration_days),
                "iteration_frequency": frequency,
            }
        )

    def _reasoning(
        self,
        stagnant: bool,
        frequency: IterationFrequency,
        params: StrategyParams,
        revised: StrategyParams,
        velocity_trend: str,
        effectiveness_trend: str,
        roi_trend: str,
    ) -> list[str]:
        ranked: list[tuple[int, str]] = []
        if stagnant:
            ranked.append(
                (
                    0,
                    f"Last {self.config.stagnation_iterations} iterations moved less than "
                    f"{params.min_improvement:g}%; switching to exploratory candidates",
                )
            )
            if revised.min_improvement < params.min_improvement:
                ranked.append(
                    (
                        1,
                        f"Lowering min_improvement from {params.min_improvement:g}% "
                        f"to {revised.min_improvement:g}%",
                    )
                )
            if revised.min_cycle_duration_days > params.min_cycle_duration_days:
                ranked.append(
                    (
                        2,
                        f"Lengthening cycles to {revised.min_cycle_duration_days} days "
                        "so experiments collect more evidence",
                    )
                )
        if effectiveness_trend == "declining":
            ranked.append((3, "Production lifts are declining; prioritize high-impact patterns"))
        if velocity_trend == "decelerating":
            ranked.append((4, "Velocity is decreasing; review bottlenecks and narrow scope"))
        if roi_trend == "improving" and not stagnant:
            ranked.append((5, "Return per mutation is improving"))

        if frequency == IterationFrequency.WEEKLY:
            ranked.append((6, "Weekly iterations while velocity and ROI are both rising"))
        elif frequency == IterationFrequency.MONTHLY:
            ranked.append((6, "Monthly iterations while returns are saturating"))
        else:
            ranked.append((6, "Bi-weekly iterations balance impact and sustainability"))

        ranked.sort(key=lambda item: item[0])
        return [text for _, text in ranked]

    def _action_plan(
        self,
        stagnant: bool,
        frequency: IterationFrequency,
        effectiveness_trend: str,
        candidates: list[CandidateProposal],
        confidence: str,
    ) -> ActionPlan:
        plan = ActionPlan()
        if stagnant:
            for candidate in candidates:
                plan.immediate.append(
                    f"Propose '{candidate.name}' ({candidate.category}) as a new pilot"
                )
        if effectiveness_trend == "declining":
            plan.immediate.append("Review production patterns whose lift regressed")
        if not plan.immediate:
            plan.immediate.append("Monitor running pilot experiments")
            plan.immediate.append("Prepare targets for the next pilot")

        plan.short_term.append(f"Run {frequency.value} iteration cycles")
        if frequency == IterationFrequency.WEEKLY:
            plan.short_term.append("Track velocity and effectiveness closely")
        if stagnant:
            plan.short_term.append("Measure exploratory pilots against the lowered floor")
        else:
            plan.short_term.append("Scale validated patterns to remaining targets")

        plan.long_term.append("Build a library of proven production patterns")
        if confidence == "high":
            plan.long_term.append("Move to maintenance mode once improvements saturate")
        else:
            plan.long_term.append("Keep iterating until returns saturate")
        return plan
