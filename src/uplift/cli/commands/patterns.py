"""Pattern registry commands.

- `uplift patterns` lists the registry.
- `uplift propose` registers an exploratory pattern.
- `uplift pilot` attaches an experiment and applies a pattern to pilot targets.
- `uplift promote` / `uplift retire` move a pattern along its lifecycle.
- `uplift targets` lists or extends the target universe.
- `uplift candidates` shows exploratory proposals from the catalog.
"""

from __future__ import annotations

import asyncio

import typer

from uplift.core.errors import UpliftError
from uplift.core.models import Arm, Experiment, PatternStatus
from uplift.lifecycle.candidates import CatalogCandidateGenerator
from uplift.lifecycle.manager import PatternLifecycleManager
from uplift.lifecycle.mutator import create_mutator

from ..helpers import create_repository, load_config, load_state
from ..output import console, create_patterns_table, print_json


def patterns(
    status: PatternStatus | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show patterns in this status",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List registered patterns."""
    state = load_state(console)
    selected = [p for p in state.patterns.values() if status is None or p.status == status]

    if json_output:
        print_json(
            {
                "patterns": [p.model_dump(mode="json") for p in selected],
                "unreadable": sorted(state.unreadable_patterns),
            }
        )
        return

    if not selected:
        console.print("[dim]No patterns registered[/dim]")
    else:
        console.print(create_patterns_table(selected, len(state.targets)))
    for pattern_id in sorted(state.unreadable_patterns):
        console.print(f"[red]Unreadable registry entry:[/red] {pattern_id}")


def propose(
    name: str = typer.Argument(..., help="Pattern name"),
    hypothesis: str = typer.Option("", "--hypothesis", "-H"),
    category: str = typer.Option("general", "--category", "-c"),
    expected_impact: float = typer.Option(0.0, "--impact", help="Expected lift, percent"),
    pattern_id: str | None = typer.Option(None, "--id", help="Explicit pattern id"),
) -> None:
    """Register a new exploratory pattern."""

    async def _propose() -> str:
        repository = create_repository(load_config(console))
        async with repository.transaction() as state:
            manager = PatternLifecycleManager(state)
            pattern = manager.propose(
                name=name,
                hypothesis=hypothesis,
                category=category,
                expected_impact=expected_impact,
                pattern_id=pattern_id,
            )
            return pattern.id

    try:
        new_id = asyncio.run(_propose())
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None
    console.print(f"[green]Proposed[/green] {new_id}")


def pilot(
    pattern_id: str = typer.Argument(..., help="Pattern to pilot"),
    targets: list[str] = typer.Option(..., "--target", "-t", help="Pilot target id"),
    experiment_id: str = typer.Option(..., "--experiment", "-e"),
    control_arm: str = typer.Option(..., "--control", help="Control arm id"),
    variant_arms: list[str] = typer.Option(..., "--variant", help="Variant arm id"),
    min_duration_days: int = typer.Option(7, "--min-days", min=0),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Attach an experiment to a pattern and apply it to pilot targets."""

    async def _pilot() -> dict:
        config = load_config(console)
        repository = create_repository(config)
        mutator = create_mutator(config.mutator, config.retry)
        try:
            async with repository.transaction() as state:
                manager = PatternLifecycleManager(state, mutator)
                arms = {arm_id: Arm(id=arm_id) for arm_id in [control_arm, *variant_arms]}
                manager.attach_experiment(
                    pattern_id,
                    Experiment(
                        id=experiment_id,
                        arms=arms,
                        control_arm_id=control_arm,
                        min_duration_days=min_duration_days,
                    ),
                )
                result = await manager.assign_pilot(pattern_id, targets)
                return result.to_dict()
        finally:
            if mutator is not None:
                await mutator.close()

    try:
        result = asyncio.run(_pilot())
    except (UpliftError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    if json_output:
        print_json(result)
        return
    console.print(
        f"Pilot {pattern_id}: {len(result['applied'])} applied, "
        f"{len(result['skipped'])} skipped, {len(result['failed'])} failed"
    )


def promote(
    pattern_id: str = typer.Argument(...),
    to: PatternStatus = typer.Argument(..., help="Target status"),
    reason: str | None = typer.Option(None, "--reason", "-r"),
) -> None:
    """Move a pattern to the next lifecycle status."""

    async def _promote() -> None:
        repository = create_repository(load_config(console))
        async with repository.transaction() as state:
            manager = PatternLifecycleManager(state)
            await manager.promote(pattern_id, to, reason=reason)

    try:
        asyncio.run(_promote())
    except UpliftError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None
    console.print(f"[green]{pattern_id}[/green] -> {to.value}")


def retire(
    pattern_id: str = typer.Argument(...),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the pattern is withdrawn"),
) -> None:
    """Retire a production pattern whose effectiveness regressed."""

    async def _retire() -> None:
        repository = create_repository(load_config(console))
        async with repository.transaction() as state:
            manager = PatternLifecycleManager(state)
            await manager.retire(pattern_id, reason)

    try:
        asyncio.run(_retire())
    except UpliftError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None
    console.print(f"[dim]{pattern_id} retired[/dim]")


def targets(
    add: list[str] = typer.Option([], "--add", "-a", help="Target id to add"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List the target universe, optionally adding targets first."""

    async def _targets() -> list[str]:
        repository = create_repository(load_config(console))
        if not add:
            return (await repository.load()).targets
        async with repository.transaction() as state:
            for target_id in add:
                if target_id not in state.targets:
                    state.targets.append(target_id)
            return list(state.targets)

    universe = asyncio.run(_targets())
    if json_output:
        print_json({"targets": universe})
        return
    console.print(f"{len(universe)} targets")
    for target_id in universe:
        console.print(f"  {target_id}")


def candidates(
    limit: int = typer.Option(3, "--limit", "-n", min=1),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show exploratory pattern proposals not yet in the registry."""
    state = load_state(console)
    proposals = CatalogCandidateGenerator().generate(state.patterns.values(), limit)
    if json_output:
        print_json({"candidates": [p.to_dict() for p in proposals]})
        return
    for i, proposal in enumerate(proposals, start=1):
        console.print(
            f"{i}. [bold]{proposal.name}[/bold] ({proposal.category}) "
            f"impact {proposal.expected_impact:g}%, effort {proposal.effort.value}"
        )
