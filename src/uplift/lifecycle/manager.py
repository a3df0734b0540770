"""Pattern registry and lifecycle transitions.

A pattern moves along a single chain::

    exploratory -> pilot -> validated -> production

plus one operator-driven exit, ``production -> retired``. Anything else is
rejected with IllegalTransitionError. The two evidence-backed steps
(validated, production) additionally need a recorded significance result
that cleared the confidence threshold and the minimum-improvement floor.

Applying a pattern is idempotent per (pattern, target): targets already in
``applied_targets`` are never sent to the Content Mutator again, and
``applied_targets`` only ever grows.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from uplift.core.errors import (
    ConfigurationError,
    IllegalTransitionError,
    MutationError,
    PatternNotFoundError,
    PromotionGateError,
)
from uplift.core.logging import get_logger
from uplift.core.models import (
    EngineState,
    Experiment,
    Pattern,
    PatternStatus,
    SignificanceRecord,
    StatusChange,
)
from uplift.evaluation.winner import WinnerSelection
from uplift.lifecycle.mutator import ContentMutator

_logger = get_logger("lifecycle")

LEGAL_TRANSITIONS: dict[PatternStatus, frozenset[PatternStatus]] = {
    PatternStatus.EXPLORATORY: frozenset({PatternStatus.PILOT}),
    PatternStatus.PILOT: frozenset({PatternStatus.VALIDATED}),
    PatternStatus.VALIDATED: frozenset({PatternStatus.PRODUCTION}),
    PatternStatus.PRODUCTION: frozenset({PatternStatus.RETIRED}),
    PatternStatus.RETIRED: frozenset(),
}

EVIDENCE_GATED: frozenset[PatternStatus] = frozenset(
    {PatternStatus.VALIDATED, PatternStatus.PRODUCTION}
)

Checkpoint = Callable[[EngineState], Awaitable[None]]


@dataclass
class ApplyResult:
    """Per-target outcome of one apply or scale batch."""

    pattern_id: str
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, object]:
        return {
            "pattern_id": self.pattern_id,
            "applied": list(self.applied),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


class PatternLifecycleManager:
    """Owns pattern state inside an EngineState.

    The manager mutates the EngineState it was given; persisting it is the
    caller's job (normally a repository transaction). When a ``checkpoint``
    callable is supplied it is awaited after every successful mutation, so
    an interrupted scale-out resumes where it stopped.

    Operations on one pattern are serialized by a per-pattern lock;
    different patterns may be processed concurrently.
    """

    def __init__(
        self,
        state: EngineState,
        mutator: ContentMutator | None = None,
        checkpoint: Checkpoint | None = None,
    ) -> None:
        self.state = state
        self.mutator = mutator
        self._checkpoint = checkpoint
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, pattern_id: str) -> asyncio.Lock:
        lock = self._locks.get(pattern_id)
        if lock is None:
            lock = self._locks[pattern_id] = asyncio.Lock()
        return lock

    def get(self, pattern_id: str) -> Pattern:
        pattern = self.state.patterns.get(pattern_id)
        if pattern is None:
            raise PatternNotFoundError(f"Pattern {pattern_id!r} not found")
        return pattern

    def patterns_in(self, status: PatternStatus) -> list[Pattern]:
        return [p for p in self.state.patterns.values() if p.status == status]

    def propose(
        self,
        name: str,
        hypothesis: str = "",
        category: str = "general",
        expected_impact: float = 0.0,
        pattern_id: str | None = None,
    ) -> Pattern:
        """Register a new exploratory pattern.

        Raises:
            ValueError: If the id is already taken.
        """
        pattern_id = pattern_id or f"pat-{uuid.uuid4().hex[:8]}"
        if pattern_id in self.state.patterns or pattern_id in self.state.unreadable_patterns:
            raise ValueError(f"Pattern {pattern_id!r} already exists")

        pattern = Pattern(
            id=pattern_id,
            name=name,
            hypothesis=hypothesis,
            category=category,
            expected_impact=expected_impact,
        )
        self.state.patterns[pattern_id] = pattern
        _logger.info("pattern_proposed", pattern_id=pattern_id, name=name, category=category)
        return pattern

    def attach_experiment(self, pattern_id: str, experiment: Experiment) -> Experiment:
        """Register the experiment that measures a pattern's pilot.

        Attaching an id that is already registered keeps the stored arms and
        their counts; only arm ids new to the experiment are added.

        Raises:
            PatternNotFoundError: Unknown pattern.
            ValueError: The id measures another pattern or uses a different
                control arm, or an arm id is owned by another experiment.
        """
        self.get(pattern_id)
        for other in self.state.experiments.values():
            shared = set(other.arms) & set(experiment.arms)
            if other.id != experiment.id and shared:
                raise ValueError(
                    f"Arm ids {sorted(shared)} already belong to experiment {other.id!r}"
                )

        existing = self.state.experiments.get(experiment.id)
        if existing is None:
            experiment = experiment.model_copy(update={"pattern_id": pattern_id})
        else:
            if existing.pattern_id not in (None, pattern_id):
                raise ValueError(
                    f"Experiment {experiment.id!r} already measures pattern "
                    f"{existing.pattern_id!r}"
                )
            if existing.control_arm_id != experiment.control_arm_id:
                raise ValueError(
                    f"Experiment {experiment.id!r} already uses control arm "
                    f"{existing.control_arm_id!r}"
                )
            arms = dict(existing.arms)
            for arm_id, arm in experiment.arms.items():
                arms.setdefault(arm_id, arm)
            experiment = existing.model_copy(update={"pattern_id": pattern_id, "arms": arms})

        self.state.experiments[experiment.id] = experiment
        _logger.info(
            "experiment_attached",
            pattern_id=pattern_id,
            experiment_id=experiment.id,
            arms=sorted(experiment.arms),
            merged=existing is not None,
        )
        return experiment

    def experiments_for(self, pattern_id: str) -> list[Experiment]:
        return [e for e in self.state.experiments.values() if e.pattern_id == pattern_id]

    async def assign_pilot(self, pattern_id: str, targets: Iterable[str]) -> ApplyResult:
        """Apply an exploratory pattern to a pilot subset and move it to pilot.

        Calling again on a pilot pattern widens the pilot set. Only targets
        that now carry the pattern join the pilot set; a failed target stays
        in the scale candidates.
        """
        targets = list(dict.fromkeys(targets))
        async with self._lock_for(pattern_id):
            pattern = self.get(pattern_id)
            if pattern.status not in (PatternStatus.EXPLORATORY, PatternStatus.PILOT):
                raise IllegalTransitionError(
                    pattern_id, pattern.status.value, PatternStatus.PILOT.value
                )
            result = await self._apply(pattern, targets)
            pattern.pilot_targets.update(result.applied, result.skipped)
            if pattern.status == PatternStatus.EXPLORATORY:
                self._transition(pattern, PatternStatus.PILOT, reason="pilot assigned")
            return result

    async def apply_pattern(self, pattern_id: str, targets: Iterable[str]) -> ApplyResult:
        """Apply a pattern to targets it has not reached yet.

        A failed target is logged and left for a later run; the rest of the
        batch still goes through.
        """
        async with self._lock_for(pattern_id):
            return await self._apply(self.get(pattern_id), list(dict.fromkeys(targets)))

    async def _apply(self, pattern: Pattern, targets: list[str]) -> ApplyResult:
        result = ApplyResult(pattern_id=pattern.id)
        for target_id in targets:
            if target_id in pattern.applied_targets:
                result.skipped.append(target_id)
                continue
            if self.mutator is None:
                raise ConfigurationError("No content mutator configured")
            try:
                success = await self.mutator.mutate(target_id, pattern.id)
            except MutationError as e:
                _logger.warning(
                    "pattern_apply_failed",
                    pattern_id=pattern.id,
                    target_id=target_id,
                    error=str(e),
                )
                result.failed.append(target_id)
                continue
            if not success:
                _logger.warning("pattern_apply_failed", pattern_id=pattern.id, target_id=target_id)
                result.failed.append(target_id)
                continue

            pattern.applied_targets.add(target_id)
            result.applied.append(target_id)
            if self._checkpoint is not None:
                await self._checkpoint(self.state)

        _logger.info(
            "pattern_applied",
            pattern_id=pattern.id,
            applied=len(result.applied),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    def has_qualifying_evidence(self, pattern: Pattern) -> bool:
        """True if any recorded result cleared every promotion gate."""
        params = self.state.strategy_params
        return any(
            record.significant
            and record.confidence_percent >= params.scale_confidence_threshold
            and record.lift >= params.min_improvement
            for record in pattern.significance_history
        )

    async def promote(
        self,
        pattern_id: str,
        to: PatternStatus,
        reason: str | None = None,
    ) -> Pattern:
        """Advance a pattern one step along the lifecycle.

        Raises:
            PatternNotFoundError: Unknown pattern.
            IllegalTransitionError: ``to`` is not the next legal status.
            PromotionGateError: Legal step, but no qualifying evidence.
        """
        async with self._lock_for(pattern_id):
            pattern = self.get(pattern_id)
            self._transition(pattern, to, reason=reason)
            return pattern

    def _transition(
        self,
        pattern: Pattern,
        to: PatternStatus,
        reason: str | None = None,
    ) -> None:
        current = pattern.status
        if to not in LEGAL_TRANSITIONS[current]:
            raise IllegalTransitionError(pattern.id, current.value, to.value)
        if to in EVIDENCE_GATED and not self.has_qualifying_evidence(pattern):
            raise PromotionGateError(
                f"Pattern {pattern.id}: no significance result clears "
                f"{self.state.strategy_params.scale_confidence_threshold}% confidence "
                f"and {self.state.strategy_params.min_improvement}% lift"
            )
        pattern.status = to
        pattern.status_history.append(
            StatusChange(from_status=current, to_status=to, reason=reason)
        )
        _logger.info(
            "pattern_status_changed",
            pattern_id=pattern.id,
            from_status=current.value,
            to_status=to.value,
            reason=reason,
        )

    def record_significance(
        self,
        pattern_id: str,
        experiment_id: str,
        selection: WinnerSelection,
        now: datetime | None = None,
    ) -> SignificanceRecord | None:
        """Store the evidence from one winner selection.

        Selections without a winner carry no evidence and are not recorded.
        """
        pattern = self.get(pattern_id)
        if selection.winner_id is None or selection.significance is None:
            return None

        record = SignificanceRecord(
            recorded_at=now or datetime.now(UTC),
            experiment_id=experiment_id,
            chi_square=selection.significance.chi_square,
            confidence_percent=selection.significance.confidence_percent,
            significant=selection.significance.significant,
            lift=selection.lift if selection.lift is not None else 0.0,
        )
        pattern.significance_history.append(record)
        if pattern.best_observed_lift is None or record.lift > pattern.best_observed_lift:
            pattern.best_observed_lift = record.lift
        _logger.debug(
            "significance_recorded",
            pattern_id=pattern_id,
            experiment_id=experiment_id,
            lift=round(record.lift, 2),
            confidence=record.confidence_percent,
        )
        return record

    def scale_candidates(self, pattern: Pattern) -> list[str]:
        """Targets in the universe the pattern has not reached, pilots excluded."""
        excluded = pattern.applied_targets | pattern.pilot_targets
        return [t for t in self.state.targets if t not in excluded]

    async def scale_pattern(self, pattern_id: str, now: datetime | None = None) -> ApplyResult:
        """Roll a validated pattern out to the rest of the target universe.

        The pattern becomes production only once every candidate succeeded;
        otherwise it stays validated and the next run retries the remainder.
        """
        async with self._lock_for(pattern_id):
            pattern = self.get(pattern_id)
            if pattern.status != PatternStatus.VALIDATED:
                raise IllegalTransitionError(
                    pattern_id, pattern.status.value, PatternStatus.PRODUCTION.value
                )
            result = await self._apply(pattern, self.scale_candidates(pattern))
            pattern.last_scaled_at = now or datetime.now(UTC)
            if result.ok:
                self._transition(pattern, PatternStatus.PRODUCTION, reason="scaled")
            else:
                _logger.warning(
                    "pattern_scale_incomplete",
                    pattern_id=pattern_id,
                    failed=result.failed,
                )
            return result

    async def retire(self, pattern_id: str, reason: str) -> Pattern:
        """Withdraw a production pattern. Applied targets stay recorded."""
        return await self.promote(pattern_id, PatternStatus.RETIRED, reason=reason)

    def regressed_patterns(self) -> list[Pattern]:
        """Production patterns whose latest result fell below min_improvement."""
        floor = self.state.strategy_params.min_improvement
        regressed = []
        for pattern in self.patterns_in(PatternStatus.PRODUCTION):
            latest = pattern.latest_significance()
            if latest is not None and latest.lift < floor:
                regressed.append(pattern)
        return regressed
