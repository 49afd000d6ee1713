"""Prometheus range-query client.

Reads cAdvisor container series (CPU rate and memory working set) from a
Prometheus HTTP API for the history charts.
"""

import math
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import httpx
import pydantic
import structlog
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

QUERY_RANGE_ENDPOINT = "/api/v1/query_range"

CPU_QUERY = "rate(container_cpu_usage_seconds_total{{{labels}}}[{window}]) * 1000"
MEMORY_QUERY = "container_memory_working_set_bytes{{{labels}}}"

_LABEL_VALUE_RE = re.compile(r"[A-Za-z0-9._-]+")


class PrometheusError(Exception):
    """Raised when Prometheus cannot be queried or returns an unusable body."""


@dataclass(frozen=True)
class TimeRange:
    """Query window with its resolution step and rate() window."""

    duration: timedelta
    step: str
    rate_window: str


DEFAULT_RANGE = "1h"

TIME_RANGES: dict[str, TimeRange] = {
    "1h": TimeRange(timedelta(hours=1), step="60", rate_window="5m"),
    "6h": TimeRange(timedelta(hours=6), step="120", rate_window="5m"),
    "24h": TimeRange(timedelta(hours=24), step="300", rate_window="10m"),
    "7d": TimeRange(timedelta(days=7), step="900", rate_window="15m"),
}


def parse_time_range(value: str | None) -> TimeRange:
    """Map a range name (1h, 6h, 24h, 7d) to a TimeRange; unknown names mean 1h."""
    return TIME_RANGES.get(value or DEFAULT_RANGE, TIME_RANGES[DEFAULT_RANGE])


def is_valid_label_value(value: str) -> bool:
    """Check that a value can be interpolated into a PromQL label matcher."""
    return _LABEL_VALUE_RE.fullmatch(value) is not None


def normalize_url(url: str) -> str:
    """Prepend ``http://`` when the scheme is missing and strip trailing slashes."""
    if not url.startswith(("http://", "https://")):
        url = "http://" + url
    return url.rstrip("/")


class HistoryModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DataPoint(HistoryModel):
    """One sample: unix seconds and value (millicores or bytes)."""

    t: int
    v: float


class HistoryResult(HistoryModel):
    cpu: list[DataPoint] = pydantic.Field(default_factory=list)
    memory: list[DataPoint] = pydantic.Field(default_factory=list)


class ContainerHistory(HistoryModel):
    pod: str
    container: str
    cpu: list[DataPoint] = pydantic.Field(default_factory=list)
    memory: list[DataPoint] = pydantic.Field(default_factory=list)


class NamespaceHistoryResult(HistoryModel):
    containers: list[ContainerHistory] = pydantic.Field(default_factory=list)


class PromSeries(pydantic.BaseModel):
    """A raw range-query series: its label set and [timestamp, value] pairs."""

    metric: dict[str, str] = pydantic.Field(default_factory=dict)
    values: list[Any] = pydantic.Field(default_factory=list)


def parse_values(raw: list[Any]) -> list[DataPoint]:
    """Convert ``[ts, "value"]`` pairs to DataPoints, skipping malformed ones."""
    points = []
    for pair in raw:
        if not isinstance(pair, list) or len(pair) != 2:  # noqa: PLR2004
            continue
        ts, value = pair
        if isinstance(ts, bool) or not isinstance(ts, int | float):
            continue
        if not isinstance(value, str):
            continue
        try:
            v = float(value)
        except ValueError:
            continue
        if not math.isfinite(v):
            continue
        points.append(DataPoint(t=int(ts), v=v))
    return points


class PrometheusClient:
    """HTTP client for the Prometheus query API.

    The underlying httpx client is thread-safe and shared by concurrent
    queries. Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.Client | None = None,
    ):
        """Initialize the Prometheus client.

        Args:
            base_url: Prometheus URL; ``http://`` is assumed without a scheme.
            timeout: Request timeout in seconds (default: 30.0).
            http: Optional preconfigured httpx client (used as is).

        Raises:
            ValueError: If base_url is empty or timeout is not positive.
        """
        if not base_url:
            msg = "base_url cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = normalize_url(base_url)
        self._http = http or httpx.Client(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the HTTP client if open."""
        if not self._http.is_closed:
            self._http.close()

    def _query_range(self, query: str, tr: TimeRange) -> dict[str, Any]:
        """Run a range query ending now and return the decoded body.

        Raises:
            PrometheusError: On transport failure, HTTP >= 400 or bad JSON.
        """
        end = int(time.time())
        start = end - int(tr.duration.total_seconds())
        params = {"query": query, "start": start, "end": end, "step": tr.step}

        start_time = time.time()
        try:
            logger.debug("Querying Prometheus", query=query, step=tr.step)
            response = self._http.get(QUERY_RANGE_ENDPOINT, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Prometheus query failed", query=query, error=str(e))
            msg = f"prometheus: {e}"
            raise PrometheusError(msg) from e

        logger.debug(
            "Prometheus query completed",
            duration_seconds=round(time.time() - start_time, 3),
        )
        if not isinstance(data, dict):
            msg = "prometheus: unexpected response body"
            raise PrometheusError(msg)
        return data

    def query_range_multi(self, query: str, tr: TimeRange) -> list[PromSeries]:
        """Run a range query and return every series.

        A non-success status yields an empty list.
        """
        data = self._query_range(query, tr)
        if data.get("status") != "success":
            return []
        raw_series = (data.get("data") or {}).get("result") or []
        try:
            return [PromSeries.model_validate(s) for s in raw_series]
        except pydantic.ValidationError as e:
            msg = f"prometheus: {e}"
            raise PrometheusError(msg) from e

    def query_range(self, query: str, tr: TimeRange) -> list[DataPoint]:
        """Run a range query and return the samples of its first series.

        A non-success status or an empty result yields an empty list.
        """
        series = self.query_range_multi(query, tr)
        if not series:
            return []
        return parse_values(series[0].values)

    def get_container_history(
        self, namespace: str, pod: str, container: str, tr: TimeRange
    ) -> HistoryResult:
        """CPU (millicores) and memory (bytes) history of one container."""
        labels = f'namespace="{namespace}",pod="{pod}",container="{container}"'
        try:
            cpu = self.query_range(
                CPU_QUERY.format(labels=labels, window=tr.rate_window), tr
            )
        except PrometheusError as e:
            msg = f"cpu query: {e}"
            raise PrometheusError(msg) from e
        try:
            memory = self.query_range(MEMORY_QUERY.format(labels=labels), tr)
        except PrometheusError as e:
            msg = f"memory query: {e}"
            raise PrometheusError(msg) from e
        return HistoryResult(cpu=cpu, memory=memory)

    def get_namespace_history(
        self, namespace: str, tr: TimeRange
    ) -> NamespaceHistoryResult:
        """CPU and memory history of every container in a namespace.

        Both queries run concurrently; their series are merged per
        (pod, container) and sorted by pod, then container.
        """
        labels = f'namespace="{namespace}",container!=""'
        cpu_query = CPU_QUERY.format(labels=labels, window=tr.rate_window)
        memory_query = MEMORY_QUERY.format(labels=labels)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="prom") as executor:
            cpu_future = executor.submit(self.query_range_multi, cpu_query, tr)
            memory_future = executor.submit(self.query_range_multi, memory_query, tr)
            cpu_series = cpu_future.result()
            memory_series = memory_future.result()

        containers: dict[tuple[str, str], ContainerHistory] = {}

        def entry(series: PromSeries) -> ContainerHistory:
            pod = series.metric.get("pod", "")
            container = series.metric.get("container", "")
            return containers.setdefault(
                (pod, container), ContainerHistory(pod=pod, container=container)
            )

        for series in cpu_series:
            entry(series).cpu = parse_values(series.values)
        for series in memory_series:
            entry(series).memory = parse_values(series.values)

        return NamespaceHistoryResult(
            containers=[containers[key] for key in sorted(containers)]
        )
