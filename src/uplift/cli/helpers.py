"""Shared CLI state and builders.

Global options (logging, config path) are collected by callbacks in the
app and stored here; commands then build the engine pieces they need from
the loaded EngineConfig.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from uplift.core.config import EngineConfig
from uplift.core.errors import ConfigurationError, StateCorruptionError
from uplift.core.logging import configure_logging
from uplift.core.models import EngineState
from uplift.metrics.source import JsonLinesMetricsSource, MetricsSource
from uplift.state.json_backend import JsonStateRepository

CONFIG_ENV_VAR = "UPLIFT_CONFIG"
DEFAULT_LOG_LEVEL = "WARNING"


class ErrorMessages:
    CONFIG_LOAD_ERROR = "Error loading config"
    STATE_LOAD_ERROR = "Error loading state"


@dataclass
class CliLoggingConfig:
    """Logging options gathered from global CLI flags.

    None means the flag was not given; the config file's logging section
    (or the CLI default) fills it in.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    file: Path | None = None
    format: Literal["json", "console", "both"] | None = None
    configured: bool = False


_log_config = CliLoggingConfig()
_config_path: Path | None = None


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def set_config_path(path: Path | None) -> None:
    global _config_path
    _config_path = path


def get_config_path() -> Path | None:
    if _config_path is not None:
        return _config_path
    env_value = os.environ.get(CONFIG_ENV_VAR)
    return Path(env_value) if env_value else None


def configure_global_logging(console: Console) -> None:
    """Configure structlog once per session from the global options.

    Raises:
        typer.Exit: If the options are inconsistent.
    """
    if _log_config.configured:
        return
    from_file = load_config(console).logging if get_config_path() else None
    try:
        configure_logging(
            level=_log_config.level or (from_file.level if from_file else DEFAULT_LOG_LEVEL),
            format=_log_config.format or (from_file.format if from_file else "console"),
            file_path=_log_config.file or (from_file.file_path if from_file else None),
        )
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None
    _log_config.configured = True


def reset_cli_state() -> None:
    """Forget global options (used between tests)."""
    global _log_config, _config_path
    _log_config = CliLoggingConfig()
    _config_path = None


def load_config(console: Console) -> EngineConfig:
    """Load the engine config named by --config / UPLIFT_CONFIG, or defaults."""
    path = get_config_path()
    if path is None:
        return EngineConfig()
    try:
        return EngineConfig.from_yaml(path)
    except ConfigurationError as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(1) from None


def create_repository(config: EngineConfig) -> JsonStateRepository:
    return JsonStateRepository(config.state_path, config.strategy.params)


def create_metrics_source(config: EngineConfig, console: Console) -> MetricsSource:
    if config.metrics_path is None:
        console.print("[red]metrics_path must be set in the config to run a cycle[/red]")
        raise typer.Exit(1)
    return JsonLinesMetricsSource(config.metrics_path)


def load_state(console: Console) -> EngineState:
    """Read engine state for display commands."""
    repository = create_repository(load_config(console))
    try:
        return asyncio.run(repository.load())
    except StateCorruptionError as e:
        console.print(f"[red]{ErrorMessages.STATE_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(1) from None
