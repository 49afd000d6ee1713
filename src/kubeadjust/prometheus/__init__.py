"""Prometheus history client."""

from .client import (
    ContainerHistory,
    DataPoint,
    HistoryResult,
    NamespaceHistoryResult,
    PrometheusClient,
    PrometheusError,
    TimeRange,
    is_valid_label_value,
    parse_time_range,
)

__all__ = [
    "ContainerHistory",
    "DataPoint",
    "HistoryResult",
    "NamespaceHistoryResult",
    "PrometheusClient",
    "PrometheusError",
    "TimeRange",
    "is_valid_label_value",
    "parse_time_range",
]
