"""Cycle and ad-hoc evaluation commands.

- `uplift run` runs one engine cycle against the configured state.
- `uplift evaluate` tests two arms given on the command line.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import typer

from uplift.core.errors import InvalidMetricsError, UpliftError
from uplift.core.models import Arm
from uplift.engine.cycle import CycleReport, CycleRunner
from uplift.evaluation.significance import SignificanceEvaluator
from uplift.evaluation.winner import calculate_lift
from uplift.lifecycle.mutator import create_mutator

from ..helpers import create_metrics_source, create_repository, load_config
from ..output import console, print_cycle_report, print_json, significance_panel


def run(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Run even if the minimum cycle duration has not elapsed",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the cycle report as JSON",
    ),
) -> None:
    """Run one evaluation and scaling cycle.

    Examples:
        uplift --config uplift.yaml run
        uplift run --force --json
    """
    report = asyncio.run(_run_cycle(force))
    if json_output:
        print_json(report.model_dump(mode="json"))
    else:
        print_cycle_report(report)
    if report.errors:
        raise typer.Exit(1)


async def _run_cycle(force: bool) -> CycleReport:
    config = load_config(console)
    repository = create_repository(config)
    source = create_metrics_source(config, console)
    mutator = create_mutator(config.mutator, config.retry)
    runner = CycleRunner.from_config(config, repository, source, mutator)
    try:
        return await runner.run(force=force)
    except UpliftError as e:
        console.print(f"[red]Cycle failed:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        if mutator is not None:
            await mutator.close()


def evaluate(
    control_views: int = typer.Option(..., "--control-views", min=0),
    control_conversions: int = typer.Option(..., "--control-conversions", min=0),
    variant_views: int = typer.Option(..., "--variant-views", min=0),
    variant_conversions: int = typer.Option(..., "--variant-conversions", min=0),
    level: float = typer.Option(
        0.95,
        "--level",
        help="Confidence interval level (0.95 or 0.99)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Chi-square test of a variant against a control.

    Examples:
        uplift evaluate --control-views 1000 --control-conversions 55 \\
            --variant-views 1000 --variant-conversions 92
    """
    try:
        control = Arm(
            id="control",
            cumulative_views=control_views,
            cumulative_conversions=control_conversions,
        )
        variant = Arm(
            id="variant",
            cumulative_views=variant_views,
            cumulative_conversions=variant_conversions,
        )
        evaluator = SignificanceEvaluator(interval_level=level)
    except (InvalidMetricsError, ValueError) as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        raise typer.Exit(1) from None

    result = evaluator.evaluate(control, variant)
    lift = calculate_lift(control.rate, variant.rate) if control.rate > 0 else None

    if json_output:
        print_json({**result.to_dict(), "lift": lift, "evaluated_at": datetime.now().isoformat()})
        return
    console.print(significance_panel(result, lift))
