"""Pytest fixtures for Uplift tests."""

import logging
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import structlog

from uplift.core.models import Arm, EngineState, Experiment, Pattern, PatternStatus
from uplift.lifecycle.mutator import InMemoryContentMutator


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset structlog, root handlers and CLI option state around each test."""
    from uplift.cli import helpers as cli_helpers

    cli_helpers.reset_cli_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_cli_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 30, 12, 0, tzinfo=UTC)


@pytest.fixture
def mutator() -> InMemoryContentMutator:
    return InMemoryContentMutator()


@pytest.fixture
def scenario_a_experiment(now: datetime) -> Experiment:
    """Control 1000/55 against variant 1000/92, started two weeks ago."""
    return Experiment(
        id="exp-hero",
        pattern_id="hero-cta",
        arms={
            "hero-control": Arm(
                id="hero-control", cumulative_views=1000, cumulative_conversions=55
            ),
            "hero-variant": Arm(
                id="hero-variant", cumulative_views=1000, cumulative_conversions=92
            ),
        },
        control_arm_id="hero-control",
        started_at=now - timedelta(days=14),
        min_duration_days=7,
    )


@pytest.fixture
def engine_state() -> EngineState:
    """Five targets and one exploratory pattern."""
    return EngineState(
        targets=["home", "pricing", "signup", "blog", "docs"],
        patterns={
            "hero-cta": Pattern(
                id="hero-cta",
                name="Hero CTA",
                status=PatternStatus.EXPLORATORY,
            ),
        },
    )


@pytest.fixture
def sample_config_dict(tmp_path: Path) -> dict:
    return {
        "state_path": str(tmp_path / "state.json"),
        "metrics_path": str(tmp_path / "metrics.jsonl"),
        "selection": {"min_sample_conversions": 30, "min_sample_views": 100},
        "strategy": {
            "trailing_window": 4,
            "params": {"min_improvement": 5.0, "iteration_frequency": "bi-weekly"},
        },
        "retry": {"max_retries": 2, "base_delay": 0.0, "jitter": False},
        "mutator": {"type": "memory"},
    }


@pytest.fixture
def sample_yaml_config(tmp_path: Path, sample_config_dict: dict) -> Path:
    import yaml

    config_path = tmp_path / "uplift.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config_dict, f)
    return config_path
