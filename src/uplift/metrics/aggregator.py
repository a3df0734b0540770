"""Cumulative per-arm metrics.

The aggregator keeps running view and conversion totals for every arm of
every registered experiment, plus the per-day breakdown it was fed. Updates
are additive and commutative; updates to one arm are serialized by a lock
owned by that arm, so concurrent ingestion into different arms never
contends.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from threading import Lock

from uplift.core.errors import ExperimentNotFoundError, InvalidMetricsError
from uplift.core.logging import get_logger
from uplift.core.models import Arm, Experiment
from uplift.metrics.source import MetricRecord

_logger = get_logger("metrics.aggregator")


class MetricsAggregator:
    """Accumulates per-arm view/conversion counts.

    Example:
        aggregator = MetricsAggregator()
        aggregator.register_experiment(experiment)
        aggregator.ingest("hero-b", views_delta=120, conversions_delta=9,
                          date=date(2025, 6, 1))
        current = aggregator.snapshot(experiment.id)
    """

    def __init__(self) -> None:
        self._arms: dict[str, Arm] = {}
        self._experiments: dict[str, Experiment] = {}
        self._daily: dict[str, dict[date, tuple[int, int]]] = defaultdict(dict)
        self._arm_locks: dict[str, Lock] = {}
        self._arm_owners: dict[str, str] = {}
        self._registry_lock = Lock()

    def register_experiment(self, experiment: Experiment) -> None:
        """Start tracking an experiment, seeding arms with its stored totals.

        Re-registering an experiment keeps the counters already accumulated.
        Metric records carry only an arm id, so an arm id belongs to exactly
        one experiment.

        Raises:
            ValueError: An arm id is already registered for another experiment.
        """
        with self._registry_lock:
            for arm_id in experiment.arms:
                owner = self._arm_owners.get(arm_id, experiment.id)
                if owner != experiment.id:
                    raise ValueError(
                        f"Arm {arm_id!r} of experiment {experiment.id!r} is already "
                        f"registered for experiment {owner!r}"
                    )
            self._experiments[experiment.id] = experiment
            for arm_id, arm in experiment.arms.items():
                if arm_id not in self._arms:
                    self._arms[arm_id] = arm.model_copy()
                    self._arm_locks[arm_id] = Lock()
                    self._arm_owners[arm_id] = experiment.id

    @property
    def experiment_ids(self) -> list[str]:
        return list(self._experiments)

    def ingest(
        self,
        arm_id: str,
        views_delta: int,
        conversions_delta: int,
        date: date,  # noqa: A002
    ) -> Arm:
        """Add counts to an arm's cumulative totals.

        Raises:
            InvalidMetricsError: For an unknown arm, a negative delta, or a
                delta that would leave conversions above views. The arm is
                left untouched.
        """
        if views_delta < 0 or conversions_delta < 0:
            raise InvalidMetricsError(
                f"Arm {arm_id}: negative delta (views={views_delta}, "
                f"conversions={conversions_delta})"
            )
        lock = self._arm_locks.get(arm_id)
        if lock is None:
            raise InvalidMetricsError(f"Unknown arm {arm_id!r}")

        with lock:
            arm = self._arms[arm_id]
            new_views = arm.cumulative_views + views_delta
            new_conversions = arm.cumulative_conversions + conversions_delta
            if new_conversions > new_views:
                raise InvalidMetricsError(
                    f"Arm {arm_id}: conversions ({new_conversions}) would exceed "
                    f"views ({new_views})"
                )
            arm.cumulative_views = new_views
            arm.cumulative_conversions = new_conversions

            day_views, day_conversions = self._daily[arm_id].get(date, (0, 0))
            self._daily[arm_id][date] = (
                day_views + views_delta,
                day_conversions + conversions_delta,
            )
            return arm.model_copy()

    def ingest_records(self, records: Iterable[MetricRecord]) -> int:
        """Ingest a batch from a metrics source.

        Records for arms no registered experiment knows about, and records
        that fail validation, are logged and skipped.

        Returns:
            Number of records applied.
        """
        applied = 0
        for record in records:
            try:
                self.ingest(record.arm_id, record.views, record.conversions, record.date)
            except InvalidMetricsError as e:
                _logger.warning(
                    "metric_record_rejected",
                    arm_id=record.arm_id,
                    date=record.date.isoformat(),
                    error=str(e),
                )
                continue
            applied += 1
        _logger.debug("metric_records_ingested", applied=applied)
        return applied

    def snapshot(self, experiment_id: str) -> Experiment:
        """Return an independent copy of an experiment with current totals."""
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(f"Experiment {experiment_id!r} is not registered")

        arms: dict[str, Arm] = {}
        for arm_id in experiment.arms:
            with self._arm_locks[arm_id]:
                arms[arm_id] = self._arms[arm_id].model_copy()
        return experiment.model_copy(update={"arms": arms})

    def daily_series(
        self,
        arm_id: str,
        start: date,
        end: date,
    ) -> list[tuple[date, int, int]]:
        """Per-day (date, views, conversions) from start to end inclusive.

        Days without data come back as zeros; nothing is interpolated.
        """
        if arm_id not in self._arms:
            raise InvalidMetricsError(f"Unknown arm {arm_id!r}")
        days = self._daily.get(arm_id, {})
        series: list[tuple[date, int, int]] = []
        current = start
        while current <= end:
            views, conversions = days.get(current, (0, 0))
            series.append((current, views, conversions))
            current += timedelta(days=1)
        return series
