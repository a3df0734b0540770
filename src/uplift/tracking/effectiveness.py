"""Append-only iteration history."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from uplift.core.logging import get_logger
from uplift.core.models import EngineState, IterationRecord

_logger = get_logger("tracking")


@dataclass(frozen=True)
class TargetOutcome:
    """What one target contributed to an iteration.

    Attributes:
        target_id: Target the pattern was applied to or measured on.
        pattern_id: Pattern involved.
        improvement_delta: Change in the tracked quality measure since the
            previous iteration, in lift points.
        mutations: Content mutations issued for this target.
        revenue_impact: Proxy revenue attributed to the change.
    """

    target_id: str
    pattern_id: str
    improvement_delta: float = 0.0
    mutations: int = 0
    revenue_impact: float = 0.0


class EffectivenessTracker:
    """Records one IterationRecord per completed cycle.

    Records are frozen and the history is only ever appended to; callers
    get a tuple back so they cannot reorder or drop entries.
    """

    def __init__(self, state: EngineState) -> None:
        self.state = state

    def history(self) -> tuple[IterationRecord, ...]:
        return tuple(self.state.history)

    @property
    def next_iteration_number(self) -> int:
        if not self.state.history:
            return 1
        return self.state.history[-1].iteration_number + 1

    def record_iteration(
        self,
        pilot_results: Iterable[TargetOutcome],
        scaling_results: Iterable[TargetOutcome],
        production_lifts: Iterable[float] = (),
        now: datetime | None = None,
    ) -> IterationRecord:
        """Append the outcome of a cycle.

        ``quality_delta`` is the sum of every per-target improvement delta
        passed in, which by contract covers only what changed since the
        previous record. The cycle credits measured lift to pilot targets
        only; a scaled target carries a zero delta and shows up in
        ``mutation_count`` and ``revenue_impact`` instead, so a run of cycles
        that only scale reads as low velocity to the stagnation check.
        """
        pilot = list(pilot_results)
        scaling = list(scaling_results)
        outcomes = pilot + scaling

        record = IterationRecord(
            iteration_number=self.next_iteration_number,
            date=now or datetime.now(UTC),
            pilot_targets=tuple(sorted({o.target_id for o in pilot})),
            scaled_targets=tuple(sorted({o.target_id for o in scaling})),
            quality_delta=sum(o.improvement_delta for o in outcomes),
            patterns_involved=tuple(sorted({o.pattern_id for o in outcomes})),
            mutation_count=sum(o.mutations for o in outcomes),
            production_lifts=tuple(production_lifts),
            revenue_impact=sum(o.revenue_impact for o in outcomes),
        )
        self.state.history.append(record)
        _logger.info(
            "iteration_recorded",
            iteration=record.iteration_number,
            quality_delta=round(record.quality_delta, 3),
            mutations=record.mutation_count,
            patterns=len(record.patterns_involved),
        )
        return record

    def window(self, size: int) -> tuple[IterationRecord, ...]:
        """The most recent ``size`` records, oldest first."""
        if size <= 0:
            return ()
        return tuple(self.state.history[-size:])
