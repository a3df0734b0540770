"""Domain and persisted-state models.

Persisted records (arms, experiments, patterns, iteration history, trend
snapshots, strategy parameters) are pydantic models so the repository can
round-trip them through JSON. Pure evaluation outputs live next to the code
that produces them as plain dataclasses.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from uplift.core.errors import InvalidMetricsError


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PatternStatus(str, Enum):
    """Position of a pattern in its rollout lifecycle."""

    EXPLORATORY = "exploratory"
    """Hypothesis only, not applied anywhere."""

    PILOT = "pilot"
    """Applied to a small subset of targets while its experiment runs."""

    VALIDATED = "validated"
    """Pilot experiment cleared the significance and improvement gates."""

    PRODUCTION = "production"
    """Scaled to the full target universe."""

    RETIRED = "retired"
    """Withdrawn by an operator after production effectiveness regressed."""


class IterationFrequency(str, Enum):
    """Cadence at which cycles are run."""

    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"

    @property
    def days(self) -> int:
        return {"weekly": 7, "bi-weekly": 14, "monthly": 30}[self.value]


class Arm(BaseModel):
    """One variant (control included) with cumulative counters."""

    id: str
    label: str = ""
    cumulative_views: int = Field(default=0, ge=0)
    cumulative_conversions: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _conversions_within_views(self) -> Arm:
        if self.cumulative_conversions > self.cumulative_views:
            raise InvalidMetricsError(
                f"Arm {self.id}: conversions ({self.cumulative_conversions}) "
                f"exceed views ({self.cumulative_views})"
            )
        return self

    @property
    def rate(self) -> float:
        if self.cumulative_views == 0:
            return 0.0
        return self.cumulative_conversions / self.cumulative_views


class Experiment(BaseModel):
    """A set of arms compared against a distinguished control arm."""

    id: str
    pattern_id: str | None = None
    arms: dict[str, Arm]
    control_arm_id: str
    started_at: datetime = Field(default_factory=_utc_now)
    min_duration_days: int = Field(default=7, ge=0)

    @model_validator(mode="after")
    def _control_exists(self) -> Experiment:
        if self.control_arm_id not in self.arms:
            raise ValueError(
                f"Experiment {self.id}: control arm {self.control_arm_id!r} not among arms"
            )
        for key, arm in self.arms.items():
            if key != arm.id:
                raise ValueError(f"Experiment {self.id}: arm key {key!r} != arm id {arm.id!r}")
        return self

    @property
    def control(self) -> Arm:
        return self.arms[self.control_arm_id]

    @property
    def variants(self) -> list[Arm]:
        return [arm for arm_id, arm in self.arms.items() if arm_id != self.control_arm_id]

    def has_run_long_enough(self, now: datetime | None = None) -> bool:
        now = now or _utc_now()
        return now - self.started_at >= timedelta(days=self.min_duration_days)


class SignificanceRecord(BaseModel):
    """Persisted evidence from one evaluation of a pattern's experiment."""

    model_config = ConfigDict(frozen=True)

    recorded_at: datetime = Field(default_factory=_utc_now)
    experiment_id: str
    chi_square: float
    confidence_percent: float
    significant: bool
    lift: float


class StatusChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_status: PatternStatus
    to_status: PatternStatus
    at: datetime = Field(default_factory=_utc_now)
    reason: str | None = None


class Pattern(BaseModel):
    """A reusable content modification and its rollout state."""

    id: str
    name: str
    category: str = "general"
    hypothesis: str = ""
    status: PatternStatus = PatternStatus.EXPLORATORY
    applied_targets: set[str] = Field(default_factory=set)
    pilot_targets: set[str] = Field(default_factory=set)
    created_at: datetime = Field(default_factory=_utc_now)
    last_scaled_at: datetime | None = None
    best_observed_lift: float | None = None
    expected_impact: float = 0.0
    significance_history: list[SignificanceRecord] = Field(default_factory=list)
    status_history: list[StatusChange] = Field(default_factory=list)

    def latest_significance(self) -> SignificanceRecord | None:
        return self.significance_history[-1] if self.significance_history else None


class IterationRecord(BaseModel):
    """Outcome of one completed cycle. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    iteration_number: int = Field(ge=1)
    date: datetime
    pilot_targets: tuple[str, ...] = ()
    scaled_targets: tuple[str, ...] = ()
    quality_delta: float = 0.0
    patterns_involved: tuple[str, ...] = ()
    mutation_count: int = Field(default=0, ge=0)
    production_lifts: tuple[float, ...] = ()
    revenue_impact: float = 0.0


class StrategyParams(BaseModel):
    """Tunable thresholds fed back into the next cycle."""

    min_improvement: float = Field(default=5.0, ge=0.0)
    min_cycle_duration_days: int = Field(default=7, ge=0)
    iteration_frequency: IterationFrequency = IterationFrequency.BI_WEEKLY
    scale_confidence_threshold: float = Field(default=95.0, ge=0.0, le=100.0)


class TrendSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime
    velocity: float
    effectiveness: float
    roi: float
    strategy_params: StrategyParams


class EngineState(BaseModel):
    """Everything the repository persists between cycles."""

    patterns: dict[str, Pattern] = Field(default_factory=dict)
    targets: list[str] = Field(default_factory=list)
    experiments: dict[str, Experiment] = Field(default_factory=dict)
    history: list[IterationRecord] = Field(default_factory=list)
    trend_snapshots: list[TrendSnapshot] = Field(default_factory=list)
    strategy_params: StrategyParams = Field(default_factory=StrategyParams)
    metrics_cursor: date | None = None
    last_cycle_at: datetime | None = None
    unreadable_patterns: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw registry entries that failed validation, kept verbatim.",
    )

    @model_validator(mode="after")
    def _arm_ids_unique_across_experiments(self) -> EngineState:
        owners: dict[str, str] = {}
        for experiment in self.experiments.values():
            for arm_id in experiment.arms:
                owner = owners.setdefault(arm_id, experiment.id)
                if owner != experiment.id:
                    raise ValueError(
                        f"Arm {arm_id!r} appears in experiments {owner!r} and {experiment.id!r}"
                    )
        return self

    def seed_strategy_params(self, params: StrategyParams) -> bool:
        """Adopt configured parameters until the first cycle revises them.

        Returns False once history or trend snapshots exist, since from then
        on the stored parameters are the optimizer's own output.
        """
        if self.history or self.trend_snapshots:
            return False
        self.strategy_params = params.model_copy()
        return True
