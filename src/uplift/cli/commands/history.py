"""Iteration history and strategy commands."""

from __future__ import annotations

import typer

from uplift.strategy.optimizer import StrategyOptimizer

from ..helpers import load_config, load_state
from ..output import console, create_history_table, print_json, print_recommendation


def history(
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Most recent iterations"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show recorded iterations, newest last."""
    records = load_state(console).history[-limit:]
    if json_output:
        print_json({"history": [r.model_dump(mode="json") for r in records]})
        return
    if not records:
        console.print("[dim]No iterations recorded yet[/dim]")
        return
    console.print(create_history_table(records))


def strategy(
    window: int | None = typer.Option(
        None,
        "--window",
        "-w",
        min=2,
        help="Trailing window size (defaults to the configured window)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Analyze history and show the recommended strategy without applying it."""
    config = load_config(console)
    state = load_state(console)
    recommendation = StrategyOptimizer(config.strategy).analyze(
        state.history,
        state.strategy_params,
        trailing_window=window,
        patterns=state.patterns.values(),
    )
    if json_output:
        print_json(recommendation.model_dump(mode="json"))
        return
    print_recommendation(recommendation)
