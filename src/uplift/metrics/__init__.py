"""Metrics ingestion: sources and the cumulative aggregator."""

from uplift.metrics.aggregator import MetricsAggregator
from uplift.metrics.source import (
    InMemoryMetricsSource,
    JsonLinesMetricsSource,
    MetricRecord,
    MetricsSource,
)

__all__ = [
    "InMemoryMetricsSource",
    "JsonLinesMetricsSource",
    "MetricRecord",
    "MetricsAggregator",
    "MetricsSource",
]
