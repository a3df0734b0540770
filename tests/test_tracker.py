"""Tests for uplift.tracking.effectiveness module."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from uplift.core.models import EngineState
from uplift.tracking.effectiveness import EffectivenessTracker, TargetOutcome

NOW = datetime(2025, 6, 30, tzinfo=UTC)


class TestRecordIteration:
    def test_aggregates_outcomes(self):
        tracker = EffectivenessTracker(EngineState())

        record = tracker.record_iteration(
            pilot_results=[
                TargetOutcome("home", "p1", improvement_delta=4.0, mutations=1),
                TargetOutcome("pricing", "p1", improvement_delta=4.0, mutations=1),
            ],
            scaling_results=[
                TargetOutcome("blog", "p2", mutations=1, revenue_impact=10.0),
                TargetOutcome("docs", "p2", mutations=1, revenue_impact=10.0),
            ],
            production_lifts=[12.5],
            now=NOW,
        )

        assert record.iteration_number == 1
        assert record.date == NOW
        assert record.pilot_targets == ("home", "pricing")
        assert record.scaled_targets == ("blog", "docs")
        assert record.quality_delta == pytest.approx(8.0)
        assert record.patterns_involved == ("p1", "p2")
        assert record.mutation_count == 4
        assert record.revenue_impact == pytest.approx(20.0)
        assert record.production_lifts == (12.5,)

    def test_numbers_are_sequential(self):
        tracker = EffectivenessTracker(EngineState())
        tracker.record_iteration([], [], now=NOW)
        second = tracker.record_iteration([], [], now=NOW)

        assert second.iteration_number == 2
        assert tracker.next_iteration_number == 3

    def test_empty_iteration(self):
        record = EffectivenessTracker(EngineState()).record_iteration([], [], now=NOW)

        assert record.quality_delta == 0.0
        assert record.patterns_involved == ()

    def test_records_are_frozen(self):
        record = EffectivenessTracker(EngineState()).record_iteration([], [], now=NOW)
        with pytest.raises(ValidationError):
            record.quality_delta = 5.0


class TestHistory:
    def test_history_is_a_tuple_copy(self):
        state = EngineState()
        tracker = EffectivenessTracker(state)
        tracker.record_iteration([], [], now=NOW)

        history = tracker.history()

        assert isinstance(history, tuple)
        assert len(history) == 1
        assert history[0] is state.history[0]

    def test_window(self):
        tracker = EffectivenessTracker(EngineState())
        for _ in range(6):
            tracker.record_iteration([], [], now=NOW)

        assert [r.iteration_number for r in tracker.window(3)] == [4, 5, 6]
        assert len(tracker.window(10)) == 6
        assert tracker.window(0) == ()
