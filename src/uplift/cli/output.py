"""Rich output formatting for the CLI.

Colors and table layouts live here so every command renders patterns,
verdicts and history the same way.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from uplift.core.models import IterationRecord, Pattern, PatternStatus
from uplift.engine.cycle import CycleReport, ExperimentVerdict
from uplift.evaluation.significance import SignificanceResult
from uplift.strategy.optimizer import StrategyRecommendation

console = Console()


def print_json(data: Any) -> None:
    """Emit machine-readable output without Rich wrapping or markup."""
    console.print(
        json.dumps(data, indent=2, default=str),
        soft_wrap=True,
        highlight=False,
        markup=False,
    )


class StatusColors:
    PATTERN_STATUS: dict[PatternStatus, str] = {
        PatternStatus.EXPLORATORY: "cyan",
        PatternStatus.PILOT: "yellow",
        PatternStatus.VALIDATED: "blue",
        PatternStatus.PRODUCTION: "green",
        PatternStatus.RETIRED: "dim",
    }

    @classmethod
    def for_pattern(cls, status: PatternStatus) -> str:
        return cls.PATTERN_STATUS.get(status, "white")


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def format_lift(lift: float | None) -> str:
    if lift is None:
        return "-"
    color = "green" if lift > 0 else "red" if lift < 0 else "white"
    return f"[{color}]{lift:+.1f}%[/{color}]"


def create_patterns_table(patterns: Iterable[Pattern], total_targets: int) -> Table:
    table = Table(title="Patterns")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Category", style="dim")
    table.add_column("Status")
    table.add_column("Applied", justify="right")
    table.add_column("Pilot", justify="right")
    table.add_column("Best lift", justify="right")
    table.add_column("Last scaled")

    for pattern in patterns:
        color = StatusColors.for_pattern(pattern.status)
        table.add_row(
            pattern.id,
            pattern.name,
            pattern.category,
            f"[{color}]{pattern.status.value}[/{color}]",
            f"{len(pattern.applied_targets)}/{total_targets}",
            str(len(pattern.pilot_targets)),
            format_lift(pattern.best_observed_lift),
            format_timestamp(pattern.last_scaled_at),
        )
    return table


def create_verdicts_table(verdicts: Iterable[ExperimentVerdict]) -> Table:
    table = Table(title="Experiments")
    table.add_column("Experiment", style="cyan")
    table.add_column("Pattern")
    table.add_column("Winner")
    table.add_column("Lift", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Scale?")
    table.add_column("Reason", style="dim")

    for verdict in verdicts:
        table.add_row(
            verdict.experiment_id,
            verdict.pattern_id or "-",
            verdict.winner or "-",
            format_lift(verdict.lift),
            f"{verdict.confidence:.1f}%" if verdict.confidence is not None else "-",
            "[green]yes[/green]" if verdict.ready_to_scale else "no",
            verdict.reason,
        )
    return table


def create_history_table(records: Iterable[IterationRecord]) -> Table:
    table = Table(title="Iteration history")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Quality delta", justify="right")
    table.add_column("Pilot", justify="right")
    table.add_column("Scaled", justify="right")
    table.add_column("Mutations", justify="right")
    table.add_column("Patterns")

    for record in records:
        table.add_row(
            str(record.iteration_number),
            format_timestamp(record.date),
            f"{record.quality_delta:+.2f}",
            str(len(record.pilot_targets)),
            str(len(record.scaled_targets)),
            str(record.mutation_count),
            ", ".join(record.patterns_involved) or "-",
        )
    return table


def significance_panel(result: SignificanceResult, lift: float | None) -> Panel:
    if result.insufficient_data:
        body = "[yellow]Insufficient data[/yellow]: both arms need views and conversions"
    else:
        verdict = (
            "[green]significant[/green]" if result.significant else "[red]not significant[/red]"
        )
        body = (
            f"Chi-square: {result.chi_square:.3f}\n"
            f"Confidence: {result.confidence_percent:.1f}% ({verdict})\n"
            f"p-value bucket: {result.p_value_bucket}\n"
            f"Lift: {format_lift(lift)}"
        )
    return Panel(body, title="Significance")


def print_recommendation(recommendation: StrategyRecommendation) -> None:
    if recommendation.status == "insufficient_data":
        console.print("[yellow]Insufficient history for strategy analysis[/yellow]")
        return

    stagnant = "[red]stagnant[/red]" if recommendation.stagnant else "[green]moving[/green]"
    console.print(
        Panel(
            f"Velocity: {recommendation.velocity:+.2f} ({recommendation.velocity_trend})\n"
            f"Effectiveness: {recommendation.effectiveness:.2f} "
            f"({recommendation.effectiveness_trend})\n"
            f"ROI: {recommendation.roi:.2f} ({recommendation.roi_trend})\n"
            f"State: {stagnant}\n"
            f"Cadence: [bold]{recommendation.recommended_frequency.value}[/bold] "
            f"(confidence {recommendation.confidence})",
            title="Strategy",
        )
    )
    for i, reason in enumerate(recommendation.reasoning, start=1):
        console.print(f"  {i}. {reason}")

    plan = recommendation.action_plan
    for title, items in (
        ("Immediate", plan.immediate),
        ("Short term", plan.short_term),
        ("Long term", plan.long_term),
    ):
        if items:
            console.print(f"\n[bold]{title}[/bold]")
            for item in items:
                console.print(f"  • {item}")


def print_cycle_report(report: CycleReport) -> None:
    if report.status == "skipped":
        console.print(f"[yellow]Cycle skipped:[/yellow] {report.skip_reason}")
        return

    console.print(
        f"[bold]Cycle {report.cycle_id}[/bold] iteration {report.iteration_number}, "
        f"{report.records_ingested} metric records ingested"
    )
    if report.results:
        console.print(create_verdicts_table(report.results))
    if report.promoted:
        console.print(f"[blue]Validated:[/blue] {', '.join(report.promoted)}")
    for applied in report.applied:
        console.print(
            f"Scaled {applied['pattern_id']}: {len(applied['applied'])} applied, "
            f"{len(applied['failed'])} failed"
        )
    if report.regressed:
        console.print(f"[red]Regressed in production:[/red] {', '.join(report.regressed)}")
    if report.proposed:
        console.print(f"[cyan]Proposed:[/cyan] {', '.join(report.proposed)}")
    for error in report.errors:
        console.print(f"[red]Error[/red] ({error.stage}, {error.pattern_id or '-'}): {error.error}")
    if report.recommendation is not None:
        print_recommendation(report.recommendation)
