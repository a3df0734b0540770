"""Structured logging infrastructure for Uplift.

Wraps structlog with engine-specific context: the cycle being run, the
component emitting the entry and, where relevant, the pattern under work.

Example usage:
    from uplift.core.logging import get_logger, configure_logging, with_context

    configure_logging(level="DEBUG", format="console")

    logger = get_logger("lifecycle")
    logger.info("pattern_scaled", pattern_id="p-1", applied=12)

    ctx = CycleContext(cycle_id="2025-06-01")
    with with_context(ctx.with_pattern("p-1")):
        logger.warning("mutation_failed", target_id="pricing")
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Keys whose values must never reach a log sink
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "bearer",
})

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]


@dataclass(frozen=True)
class CycleContext:
    """Immutable correlation context for one engine cycle.

    Attributes:
        cycle_id: Identifier of the batch cycle (usually its ISO date).
        run_id: Unique id per process invocation.
        component: Component currently doing the work.
        pattern_id: Pattern being processed, if any.
    """

    cycle_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    component: str = "engine"
    pattern_id: str | None = None

    def with_pattern(self, pattern_id: str) -> CycleContext:
        """Return a copy scoped to a single pattern."""
        return replace(self, pattern_id=pattern_id)

    def with_component(self, component: str) -> CycleContext:
        """Return a copy attributed to another component."""
        return replace(self, component=component)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "cycle_id": self.cycle_id,
            "run_id": self.run_id,
            "component": self.component,
        }
        if self.pattern_id is not None:
            result["pattern_id"] = self.pattern_id
        return result


_current_context: ContextVar[CycleContext | None] = ContextVar(
    "uplift_context", default=None
)


def get_current_context() -> CycleContext | None:
    """Get the active CycleContext, if any."""
    return _current_context.get()


@contextmanager
def with_context(ctx: CycleContext) -> Iterator[CycleContext]:
    """Activate a CycleContext for the duration of a block.

    Log calls inside the block pick up the context fields unless the call
    binds the same key explicitly.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor merging the active CycleContext into the entry."""
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


class UpliftLogger:
    """Component-bound wrapper around a structlog logger.

    The underlying structlog logger is fetched lazily on every call so that
    module-level loggers created at import time still honour a later
    configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> UpliftLogger:
        """Return a new logger with additional bound context."""
        new_logger = UpliftLogger.__new__(UpliftLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._get_logger().exception(event, **kw)


def _build_processors(renderer: Processor, include_timestamps: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
        _add_context,
    ]
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 5,
    include_timestamps: bool = True,
) -> None:
    """Configure structured logging. Call once at startup.

    Args:
        level: Minimum level captured.
        format: "console" for humans, "json" for machines, "both" for
            console on stderr plus JSON into ``file_path``.
        file_path: Log file. Required when format is "both".
        max_file_size_mb: Size at which the file handler rotates.
        backup_count: Rotated files to keep.
        include_timestamps: Add an ISO8601 UTC timestamp to each entry.

    Raises:
        ValueError: If format="both" and no file_path is given.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    if format in ("json", "both"):
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            handlers.append(file_handler)
        else:
            json_handler = logging.StreamHandler(sys.stdout)
            json_handler.setLevel(log_level)
            handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    if format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=_build_processors(renderer, include_timestamps),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> UpliftLogger:
    """Get a logger bound to a component name."""
    return UpliftLogger(component, **initial_context)


__all__ = [
    "CycleContext",
    "SENSITIVE_PATTERNS",
    "UpliftLogger",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
