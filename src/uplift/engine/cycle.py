"""One batch cycle of the engine.

A cycle runs inside a single repository transaction:

1. Skip if the previous cycle ran less than min_cycle_duration_days ago.
2. Pull new metric records and fold them into every experiment.
3. Evaluate pilot and production patterns whose experiments ran long
   enough; record the evidence and promote winning pilots to validated.
4. Scale every validated pattern to the rest of the target universe.
5. Record the iteration, analyze strategy, persist revised parameters.

A failure while handling one pattern is logged and reported; every other
pattern still goes through the cycle.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from uplift.core.config import EngineConfig
from uplift.core.logging import CycleContext, get_logger, with_context
from uplift.core.models import EngineState, Experiment, Pattern, PatternStatus, StrategyParams
from uplift.evaluation.significance import SignificanceEvaluator
from uplift.evaluation.winner import WinnerSelection, WinnerSelector
from uplift.lifecycle.candidates import CandidateGenerator, CatalogCandidateGenerator
from uplift.lifecycle.manager import ApplyResult, PatternLifecycleManager
from uplift.lifecycle.mutator import ContentMutator
from uplift.metrics.aggregator import MetricsAggregator
from uplift.metrics.source import MetricsSource, latest_date
from uplift.state.base import StateRepository
from uplift.strategy.optimizer import ActionPlan, StrategyOptimizer, StrategyRecommendation
from uplift.tracking.effectiveness import EffectivenessTracker, TargetOutcome

_logger = get_logger("engine")


class ExperimentVerdict(BaseModel):
    """Per-experiment result at the reporting boundary."""

    experiment_id: str
    pattern_id: str | None = None
    winner: str | None = None
    lift: float | None = None
    confidence: float | None = None
    ready_to_scale: bool = False
    insufficient_data: bool = False
    reason: str = ""

    @classmethod
    def from_selection(
        cls,
        experiment: Experiment,
        selection: WinnerSelection,
    ) -> ExperimentVerdict:
        return cls(
            experiment_id=experiment.id,
            pattern_id=experiment.pattern_id,
            winner=selection.winner_id,
            lift=selection.lift,
            confidence=selection.confidence_percent,
            ready_to_scale=selection.ready_to_scale,
            insufficient_data=selection.insufficient_data,
            reason=selection.reason,
        )


class CycleError(BaseModel):
    pattern_id: str | None = None
    stage: str
    error: str


class CycleReport(BaseModel):
    """Structured outcome of one cycle, for downstream presentation."""

    cycle_id: str
    status: Literal["completed", "skipped"]
    started_at: datetime
    iteration_number: int | None = None
    records_ingested: int = 0
    results: list[ExperimentVerdict] = Field(default_factory=list)
    applied: list[dict] = Field(default_factory=list)
    promoted: list[str] = Field(default_factory=list)
    regressed: list[str] = Field(default_factory=list)
    proposed: list[str] = Field(default_factory=list)
    action_plan: ActionPlan | None = None
    recommendation: StrategyRecommendation | None = None
    errors: list[CycleError] = Field(default_factory=list)
    skip_reason: str | None = None


class CycleRunner:
    """Wires the engine components together for one cycle.

    ``strategy_params`` are the configured starting parameters; they replace
    the stored ones until the first cycle has been recorded.

    Example:
        runner = CycleRunner.from_config(config, repository, source, mutator)
        report = await runner.run()
        print(report.model_dump_json(indent=2))
    """

    def __init__(
        self,
        repository: StateRepository,
        source: MetricsSource,
        mutator: ContentMutator | None,
        selector: WinnerSelector | None = None,
        optimizer: StrategyOptimizer | None = None,
        candidate_generator: CandidateGenerator | None = None,
        revenue_per_lift_point: float = 1.0,
        trend_retention: int = 30,
        auto_propose: bool = True,
        checkpoint_each_target: bool = True,
        strategy_params: StrategyParams | None = None,
    ) -> None:
        self.repository = repository
        self.source = source
        self.mutator = mutator
        self.selector = selector or WinnerSelector()
        self.candidate_generator = candidate_generator or CatalogCandidateGenerator()
        self.optimizer = optimizer or StrategyOptimizer(
            candidate_generator=self.candidate_generator
        )
        self.revenue_per_lift_point = revenue_per_lift_point
        self.trend_retention = trend_retention
        self.auto_propose = auto_propose
        self.checkpoint_each_target = checkpoint_each_target
        self.strategy_params = strategy_params

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        repository: StateRepository,
        source: MetricsSource,
        mutator: ContentMutator | None,
        candidate_generator: CandidateGenerator | None = None,
    ) -> CycleRunner:
        generator = candidate_generator or CatalogCandidateGenerator()
        selector = WinnerSelector(
            evaluator=SignificanceEvaluator(config.significance.interval_level),
            min_sample_conversions=config.selection.min_sample_conversions,
            min_sample_views=config.selection.min_sample_views,
        )
        return cls(
            repository=repository,
            source=source,
            mutator=mutator,
            selector=selector,
            optimizer=StrategyOptimizer(config.strategy, generator),
            candidate_generator=generator,
            revenue_per_lift_point=config.strategy.revenue_per_lift_point,
            trend_retention=config.strategy.trend_retention,
            strategy_params=config.strategy.params,
        )

    def _too_soon(self, state: EngineState, now: datetime) -> bool:
        if state.last_cycle_at is None:
            return False
        gate = timedelta(days=state.strategy_params.min_cycle_duration_days)
        return now - state.last_cycle_at < gate

    async def run(self, now: datetime | None = None, force: bool = False) -> CycleReport:
        """Run one cycle and return its report.

        Args:
            now: Cycle timestamp; defaults to the current UTC time.
            force: Ignore the minimum cycle duration gate.
        """
        now = now or datetime.now(UTC)
        ctx = CycleContext(cycle_id=now.date().isoformat())
        with with_context(ctx):
            async with self.repository.transaction() as state:
                if self.strategy_params is not None:
                    state.seed_strategy_params(self.strategy_params)
                report = CycleReport(cycle_id=ctx.cycle_id, status="completed", started_at=now)
                if not force and self._too_soon(state, now):
                    report.status = "skipped"
                    report.skip_reason = (
                        f"last cycle ran at {state.last_cycle_at.isoformat()}, "
                        f"less than {state.strategy_params.min_cycle_duration_days} days ago"
                    )
                    _logger.info("cycle_skipped", reason=report.skip_reason)
                    return report

                _logger.info("cycle_started", patterns=len(state.patterns))
                await self._run_cycle(state, report, now, ctx)
                _logger.info(
                    "cycle_completed",
                    iteration=report.iteration_number,
                    promoted=len(report.promoted),
                    errors=len(report.errors),
                )
                return report

    async def _run_cycle(
        self,
        state: EngineState,
        report: CycleReport,
        now: datetime,
        ctx: CycleContext,
    ) -> None:
        for pattern_id in state.unreadable_patterns:
            report.errors.append(
                CycleError(pattern_id=pattern_id, stage="load", error="registry entry unreadable")
            )

        report.records_ingested = await self._ingest(state)

        checkpoint = self.repository.save if self.checkpoint_each_target else None
        manager = PatternLifecycleManager(state, self.mutator, checkpoint=checkpoint)
        params = state.strategy_params

        pilot_outcomes: list[TargetOutcome] = []
        for experiment in list(state.experiments.values()):
            if experiment.pattern_id in state.unreadable_patterns:
                continue
            with with_context(ctx.with_pattern(experiment.pattern_id or "-")):
                try:
                    pattern = (
                        manager.get(experiment.pattern_id) if experiment.pattern_id else None
                    )
                    verdict = await self._evaluate(manager, experiment, pattern, now, report)
                except Exception as e:
                    _logger.exception("pattern_evaluation_failed", experiment_id=experiment.id)
                    report.errors.append(
                        CycleError(pattern_id=experiment.pattern_id, stage="evaluate", error=str(e))
                    )
                    continue
            if verdict is None:
                continue
            report.results.append(verdict)
            if pattern is not None and pattern.id in report.promoted and verdict.lift is not None:
                share = verdict.lift / max(len(pattern.pilot_targets), 1)
                pilot_outcomes.extend(
                    TargetOutcome(target_id=t, pattern_id=pattern.id, improvement_delta=share)
                    for t in sorted(pattern.pilot_targets)
                )

        scaling_outcomes, production_lifts = await self._scale_validated(manager, report, ctx, now)

        report.regressed = [p.id for p in manager.regressed_patterns()]
        for pattern_id in report.regressed:
            _logger.warning(
                "production_pattern_regressed",
                pattern_id=pattern_id,
                min_improvement=params.min_improvement,
            )

        tracker = EffectivenessTracker(state)
        record = tracker.record_iteration(
            pilot_outcomes, scaling_outcomes, production_lifts=production_lifts, now=now
        )
        report.iteration_number = record.iteration_number

        recommendation = self.optimizer.analyze(
            tracker.history(), params, patterns=state.patterns.values(), now=now
        )
        report.recommendation = recommendation
        report.action_plan = recommendation.action_plan
        if recommendation.snapshot is not None:
            state.trend_snapshots.append(recommendation.snapshot)
            del state.trend_snapshots[: -self.trend_retention]
        state.strategy_params = recommendation.revised_params

        if self.auto_propose and recommendation.exploratory_mode:
            for candidate in recommendation.candidates:
                pattern = manager.propose(
                    name=candidate.name,
                    hypothesis=candidate.hypothesis,
                    category=candidate.category,
                    expected_impact=candidate.expected_impact,
                )
                report.proposed.append(pattern.id)

        state.last_cycle_at = now

    async def _ingest(self, state: EngineState) -> int:
        records = await self.source.fetch(state.metrics_cursor)
        if not records:
            return 0
        aggregator = MetricsAggregator()
        for experiment in state.experiments.values():
            aggregator.register_experiment(experiment)
        applied = aggregator.ingest_records(records)
        for experiment_id in aggregator.experiment_ids:
            state.experiments[experiment_id] = aggregator.snapshot(experiment_id)
        state.metrics_cursor = latest_date(records) or state.metrics_cursor
        return applied

    async def _evaluate(
        self,
        manager: PatternLifecycleManager,
        experiment: Experiment,
        pattern: Pattern | None,
        now: datetime,
        report: CycleReport,
    ) -> ExperimentVerdict | None:
        if pattern is not None and pattern.status not in (
            PatternStatus.PILOT,
            PatternStatus.PRODUCTION,
        ):
            return None
        if not experiment.has_run_long_enough(now):
            _logger.debug("experiment_too_young", experiment_id=experiment.id)
            return None

        params = manager.state.strategy_params
        selection = self.selector.select_winner(
            experiment.control,
            experiment.variants,
            min_improvement=params.min_improvement,
            scale_confidence_threshold=params.scale_confidence_threshold,
        )
        if pattern is not None:
            manager.record_significance(pattern.id, experiment.id, selection, now=now)
            if pattern.status == PatternStatus.PILOT and selection.ready_to_scale:
                await manager.promote(pattern.id, PatternStatus.VALIDATED, reason=selection.reason)
                report.promoted.append(pattern.id)
        return ExperimentVerdict.from_selection(experiment, selection)

    async def _scale_validated(
        self,
        manager: PatternLifecycleManager,
        report: CycleReport,
        ctx: CycleContext,
        now: datetime,
    ) -> tuple[list[TargetOutcome], list[float]]:
        validated = manager.patterns_in(PatternStatus.VALIDATED)

        async def scale(pattern: Pattern) -> ApplyResult | None:
            with with_context(ctx.with_pattern(pattern.id)):
                try:
                    return await manager.scale_pattern(pattern.id, now=now)
                except Exception as e:
                    _logger.exception("pattern_scale_failed", pattern_id=pattern.id)
                    report.errors.append(
                        CycleError(pattern_id=pattern.id, stage="scale", error=str(e))
                    )
                    return None

        results = await asyncio.gather(*(scale(p) for p in validated))

        outcomes: list[TargetOutcome] = []
        production_lifts: list[float] = []
        for pattern, result in zip(validated, results, strict=True):
            if result is None:
                continue
            report.applied.append(result.to_dict())
            lift = pattern.best_observed_lift or 0.0
            # quality delta was credited when the pilot was promoted
            outcomes.extend(
                TargetOutcome(
                    target_id=target_id,
                    pattern_id=pattern.id,
                    mutations=1,
                    revenue_impact=lift * self.revenue_per_lift_point,
                )
                for target_id in result.applied
            )
            if pattern.status == PatternStatus.PRODUCTION:
                latest = pattern.latest_significance()
                production_lifts.append(latest.lift if latest else lift)
        return outcomes, production_lifts
