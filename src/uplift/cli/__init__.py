"""Uplift CLI.

Typer app assembly: global options are handled by the callback below and
each command lives in ``cli/commands``.

    cli/
    ├── __init__.py        # app assembly
    ├── helpers.py         # global option state, config and state loading
    ├── output.py          # Rich tables and panels
    └── commands/
        ├── run.py         # run, evaluate
        ├── patterns.py    # patterns, propose, pilot, promote, retire, targets, candidates
        └── history.py     # history, strategy
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from uplift import __version__

from .commands import (
    candidates,
    evaluate,
    history,
    patterns,
    pilot,
    promote,
    propose,
    retire,
    run,
    strategy,
    targets,
)
from .helpers import (
    configure_global_logging,
    set_config_path,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

app = typer.Typer(
    name="uplift",
    help="Experiment evaluation and pattern lifecycle engine",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"uplift v{__version__}")
        raise typer.Exit()


def config_callback(value: Path | None) -> Path | None:
    if value:
        set_config_path(value)
    return value


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            callback=config_callback,
            help="Engine config YAML",
            envvar="UPLIFT_CONFIG",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="UPLIFT_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="UPLIFT_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="UPLIFT_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Uplift: decide which content variants win and roll them out."""
    configure_global_logging(console)


app.command()(run)
app.command()(evaluate)

app.command()(patterns)
app.command()(propose)
app.command()(pilot)
app.command()(promote)
app.command()(retire)
app.command()(targets)
app.command()(candidates)

app.command()(history)
app.command()(strategy)

__all__ = ["app", "main", "console"]
