"""Tests for uplift.core.logging module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from uplift.core.logging import (
    SENSITIVE_PATTERNS,
    CycleContext,
    UpliftLogger,
    _add_context,
    _sanitize_event_dict,
    _sanitize_value,
    configure_logging,
    get_current_context,
    get_logger,
    with_context,
)


def read_json_lines(path: Path) -> list[dict]:
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestSanitization:
    """Tests for sensitive field redaction."""

    def test_known_patterns(self):
        for pattern in ("api_key", "token", "password", "secret", "authorization"):
            assert pattern in SENSITIVE_PATTERNS

    @pytest.mark.parametrize("key", ["api_key", "CMS_TOKEN", "db_password", "Authorization"])
    def test_redacts(self, key):
        assert _sanitize_value(key, "value") == "[REDACTED]"

    def test_preserves_safe_values(self):
        assert _sanitize_value("pattern_id", "hero-cta") == "hero-cta"
        assert _sanitize_value("applied", 3) == 3

    def test_nested_dicts(self):
        event_dict = {"event": "x", "headers": {"Authorization": "Bearer abc", "Accept": "json"}}

        result = _sanitize_event_dict(None, "info", event_dict)

        assert result["headers"]["Authorization"] == "[REDACTED]"
        assert result["headers"]["Accept"] == "json"


class TestCycleContext:
    def test_to_dict_omits_missing_pattern(self):
        ctx = CycleContext(cycle_id="2025-06-30", run_id="run-1")
        assert ctx.to_dict() == {"cycle_id": "2025-06-30", "run_id": "run-1", "component": "engine"}

    def test_derived_contexts_are_copies(self):
        ctx = CycleContext(cycle_id="2025-06-30")
        scoped = ctx.with_pattern("hero-cta").with_component("lifecycle")

        assert ctx.pattern_id is None
        assert scoped.pattern_id == "hero-cta"
        assert scoped.component == "lifecycle"
        assert scoped.run_id == ctx.run_id

    def test_with_context_restores_previous(self):
        outer = CycleContext(cycle_id="outer")
        with with_context(outer):
            with with_context(outer.with_pattern("p1")):
                assert get_current_context().pattern_id == "p1"
            assert get_current_context() is outer
        assert get_current_context() is None

    def test_add_context_keeps_explicit_keys(self):
        with with_context(CycleContext(cycle_id="c1", pattern_id="p1")):
            result = _add_context(None, "info", {"event": "x", "pattern_id": "explicit"})

        assert result["pattern_id"] == "explicit"
        assert result["cycle_id"] == "c1"


class TestUpliftLogger:
    def test_get_logger(self):
        logger = get_logger("lifecycle")

        assert isinstance(logger, UpliftLogger)
        assert logger._component == "lifecycle"

    def test_bind_returns_new_logger(self):
        logger = get_logger("lifecycle")
        bound = logger.bind(pattern_id="p1")

        assert bound is not logger
        assert bound._context == {"component": "lifecycle", "pattern_id": "p1"}
        assert logger._context == {"component": "lifecycle"}


class TestConfigureLogging:
    def test_console_sets_level(self):
        configure_logging(level="DEBUG", format="console")
        assert logging.getLogger().level == logging.DEBUG

    def test_both_requires_file(self):
        with pytest.raises(ValueError, match="file_path"):
            configure_logging(format="both")

    def test_json_file_output_is_redacted_and_correlated(self, tmp_path):
        log_file = tmp_path / "logs" / "uplift.log"
        configure_logging(level="INFO", format="json", file_path=log_file)

        with with_context(CycleContext(cycle_id="2025-06-30", run_id="run-1")):
            get_logger("mutator").info("mutation_requested", target_id="home", api_key="sk-1")

        entries = read_json_lines(log_file)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["event"] == "mutation_requested"
        assert entry["component"] == "mutator"
        assert entry["cycle_id"] == "2025-06-30"
        assert entry["api_key"] == "[REDACTED]"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_level_filters(self, tmp_path):
        log_file = tmp_path / "uplift.log"
        configure_logging(level="WARNING", format="json", file_path=log_file)

        logger = get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        assert [e["event"] for e in read_json_lines(log_file)] == ["shown"]

    def test_timestamps_optional(self, tmp_path):
        log_file = tmp_path / "uplift.log"
        configure_logging(format="json", file_path=log_file, include_timestamps=False)

        get_logger("test").info("event")

        assert "timestamp" not in read_json_lines(log_file)[0]
