"""Metrics sources feeding the aggregator.

A source hands over per-arm, per-day view and conversion counts. Removing
double-counted events is the source's job; the engine trusts what it gets.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from uplift.core.errors import InvalidMetricsError
from uplift.core.logging import get_logger

_logger = get_logger("metrics.source")


@dataclass(frozen=True)
class MetricRecord:
    """Counts for one arm on one day."""

    arm_id: str
    date: date
    views: int
    conversions: int

    @classmethod
    def from_dict(cls, data: dict) -> MetricRecord:
        try:
            day = data["date"]
            if isinstance(day, str):
                day = date.fromisoformat(day[:10])
            return cls(
                arm_id=str(data["arm_id"]),
                date=day,
                views=int(data["views"]),
                conversions=int(data["conversions"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidMetricsError(f"Malformed metric record {data!r}: {e}") from e

    def to_dict(self) -> dict:
        return {
            "arm_id": self.arm_id,
            "date": self.date.isoformat(),
            "views": self.views,
            "conversions": self.conversions,
        }


class MetricsSource(ABC):
    """Supplies metric records to the aggregator."""

    @abstractmethod
    async def fetch(self, since: date | None = None) -> list[MetricRecord]:
        """Return records dated strictly after ``since`` (all records if None)."""
        ...


class InMemoryMetricsSource(MetricsSource):
    """Source backed by a list, for tests and simulations."""

    def __init__(self, records: list[MetricRecord] | None = None) -> None:
        self.records: list[MetricRecord] = list(records or [])

    def add(self, record: MetricRecord) -> None:
        self.records.append(record)

    async def fetch(self, since: date | None = None) -> list[MetricRecord]:
        return [r for r in self.records if since is None or r.date > since]


class JsonLinesMetricsSource(MetricsSource):
    """Reads records from a JSON-lines export, one record per line.

    Malformed lines are logged and skipped so one bad export row does not
    block the whole cycle.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    async def fetch(self, since: date | None = None) -> list[MetricRecord]:
        if not self.path.exists():
            _logger.warning("metrics_file_missing", path=str(self.path))
            return []

        records: list[MetricRecord] = []
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = MetricRecord.from_dict(json.loads(line))
                except (json.JSONDecodeError, InvalidMetricsError) as e:
                    _logger.warning(
                        "metrics_line_skipped",
                        path=str(self.path),
                        line=line_no,
                        error=str(e),
                    )
                    continue
                if since is None or record.date > since:
                    records.append(record)
        return records


def latest_date(records: list[MetricRecord]) -> date | None:
    """Most recent record date, used to advance the fetch cursor."""
    return max((r.date for r in records), default=None)


