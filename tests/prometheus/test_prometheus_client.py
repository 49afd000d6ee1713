"""Tests for the Prometheus history client."""

from datetime import timedelta

import httpx
import pytest

from kubeadjust import prometheus
from kubeadjust.prometheus.client import normalize_url, parse_values

PROMETHEUS_URL = "http://prometheus.test:9090"


def _matrix(*series: tuple[dict[str, str], list]) -> dict:
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [{"metric": metric, "values": values} for metric, values in series],
        },
    }


class QueryHandler:
    """Answers range queries by matching a substring of the PromQL query."""

    def __init__(self, answers: dict[str, httpx.Response]):
        self.answers = answers
        self.queries: list[httpx.QueryParams] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/query_range"
        self.queries.append(request.url.params)
        query = request.url.params["query"]
        for needle, response in self.answers.items():
            if needle in query:
                return response
        return httpx.Response(200, json=_matrix())


def _client(handler: QueryHandler) -> prometheus.PrometheusClient:
    http = httpx.Client(base_url=PROMETHEUS_URL, transport=httpx.MockTransport(handler))
    return prometheus.PrometheusClient(PROMETHEUS_URL, http=http)


# ---------------------------------------------------------------------------
# Time ranges and labels
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("name", "duration", "step", "window"),
    [
        ("1h", timedelta(hours=1), "60", "5m"),
        ("6h", timedelta(hours=6), "120", "5m"),
        ("24h", timedelta(hours=24), "300", "10m"),
        ("7d", timedelta(days=7), "900", "15m"),
    ],
)
def test_parse_time_range(name: str, duration: timedelta, step: str, window: str):
    """Each range name maps to its duration, step and rate window."""
    actual_range = prometheus.parse_time_range(name)

    assert actual_range == prometheus.TimeRange(duration, step, window)


@pytest.mark.parametrize("name", [None, "", "30m", "1y"])
def test_parse_time_range_defaults_to_one_hour(name: str | None):
    """Missing or unknown range names fall back to 1h."""
    assert prometheus.parse_time_range(name) == prometheus.parse_time_range("1h")


@pytest.mark.parametrize("value", ["shop", "web-7d9f-abc", "app_1", "v1.2"])
def test_valid_label_values(value: str):
    assert prometheus.is_valid_label_value(value)


@pytest.mark.parametrize(
    "value",
    ["", 'a"b', "a{b", "a}b", "a\\b", "a b", 'x",namespace!="y', "shop\n", "\nshop"],
)
def test_invalid_label_values(value: str):
    """Values that could break out of a PromQL matcher are rejected."""
    assert not prometheus.is_valid_label_value(value)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("prometheus:9090", "http://prometheus:9090"),
        ("http://prometheus:9090/", "http://prometheus:9090"),
        ("https://prom.example.com//", "https://prom.example.com"),
    ],
)
def test_normalize_url(url: str, expected: str):
    """A missing scheme defaults to http and trailing slashes are stripped."""
    assert normalize_url(url) == expected


def test_client_validation():
    with pytest.raises(ValueError, match="base_url cannot be empty"):
        prometheus.PrometheusClient("")
    with pytest.raises(ValueError, match="timeout must be positive"):
        prometheus.PrometheusClient(PROMETHEUS_URL, timeout=0)


# ---------------------------------------------------------------------------
# parse_values
# ---------------------------------------------------------------------------


def test_parse_values_skips_malformed_samples():
    """Samples that are not finite [number, "float"] pairs are skipped."""
    raw = [
        [1700000000.5, "1.5"],
        [1700000060, "2"],
        [1700000120, 3],
        ["1700000180", "4"],
        [1700000240, "NaN-ish"],
        [1700000250, "NaN"],
        [1700000260, "+Inf"],
        [1700000270, "-Inf"],
        [1700000300],
        "garbage",
    ]

    actual_points = parse_values(raw)

    assert [(p.t, p.v) for p in actual_points] == [(1700000000, 1.5), (1700000060, 2.0)]


# ---------------------------------------------------------------------------
# query_range
# ---------------------------------------------------------------------------


def test_query_range_first_series_only():
    """Only the first series of a range query is returned."""
    handler = QueryHandler(
        {
            "up": httpx.Response(
                200,
                json=_matrix(
                    ({"job": "a"}, [[1700000000, "1"]]),
                    ({"job": "b"}, [[1700000000, "0"]]),
                ),
            )
        }
    )
    tr = prometheus.parse_time_range("6h")

    points = _client(handler).query_range("up", tr)

    assert [(p.t, p.v) for p in points] == [(1700000000, 1.0)]
    (params,) = handler.queries
    assert params["step"] == "120"
    assert int(params["end"]) - int(params["start"]) == 6 * 3600


@pytest.mark.parametrize(
    "body",
    [
        {"status": "error", "errorType": "bad_data", "error": "parse error"},
        {"status": "success", "data": {"resultType": "matrix", "result": []}},
    ],
)
def test_query_range_empty(body: dict):
    """A non-success status or no series yields no points."""
    handler = QueryHandler({"up": httpx.Response(200, json=body)})

    assert _client(handler).query_range("up", prometheus.parse_time_range("1h")) == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="service unavailable"),
        httpx.Response(400, json={"status": "error", "error": "bad query"}),
        httpx.Response(200, content=b"not json"),
    ],
)
def test_query_range_errors(response: httpx.Response):
    """HTTP errors and undecodable bodies raise PrometheusError."""
    handler = QueryHandler({"up": response})

    with pytest.raises(prometheus.PrometheusError):
        _client(handler).query_range("up", prometheus.parse_time_range("1h"))


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def test_container_history_queries():
    """Container history runs a CPU rate query and a memory gauge query."""
    handler = QueryHandler(
        {
            "container_cpu_usage_seconds_total": httpx.Response(
                200, json=_matrix(({}, [[1700000000, "12.5"]]))
            ),
            "container_memory_working_set_bytes": httpx.Response(
                200, json=_matrix(({}, [[1700000000, "1048576"]]))
            ),
        }
    )
    tr = prometheus.parse_time_range("24h")

    result = _client(handler).get_container_history("shop", "web-1", "app", tr)

    assert [(p.t, p.v) for p in result.cpu] == [(1700000000, 12.5)]
    assert [(p.t, p.v) for p in result.memory] == [(1700000000, 1048576.0)]
    cpu_query, memory_query = (q["query"] for q in handler.queries)
    labels = 'namespace="shop",pod="web-1",container="app"'
    assert cpu_query == f"rate(container_cpu_usage_seconds_total{{{labels}}}[10m]) * 1000"
    assert memory_query == f"container_memory_working_set_bytes{{{labels}}}"


def test_container_history_error_names_query():
    """A failing memory query is reported as such."""
    handler = QueryHandler(
        {"container_memory_working_set_bytes": httpx.Response(500, text="oops")}
    )

    with pytest.raises(prometheus.PrometheusError, match="^memory query"):
        _client(handler).get_container_history(
            "shop", "web-1", "app", prometheus.parse_time_range("1h")
        )


def test_namespace_history_merges_and_sorts():
    """CPU and memory series merge per pod/container, sorted by pod then container."""
    handler = QueryHandler(
        {
            "container_cpu_usage_seconds_total": httpx.Response(
                200,
                json=_matrix(
                    ({"pod": "web-2", "container": "app"}, [[1700000000, "20"]]),
                    ({"pod": "web-1", "container": "sidecar"}, [[1700000000, "1"]]),
                    ({"pod": "web-1", "container": "app"}, [[1700000000, "10"]]),
                ),
            ),
            "container_memory_working_set_bytes": httpx.Response(
                200,
                json=_matrix(
                    ({"pod": "web-1", "container": "app"}, [[1700000000, "100"]]),
                    ({"pod": "db-0", "container": "postgres"}, [[1700000000, "500"]]),
                ),
            ),
        }
    )

    result = _client(handler).get_namespace_history(
        "shop", prometheus.parse_time_range("1h")
    )

    assert [(c.pod, c.container) for c in result.containers] == [
        ("db-0", "postgres"),
        ("web-1", "app"),
        ("web-1", "sidecar"),
        ("web-2", "app"),
    ]
    db, web_app, web_sidecar, _ = result.containers
    assert db.cpu == []
    assert [p.v for p in db.memory] == [500.0]
    assert [p.v for p in web_app.cpu] == [10.0]
    assert [p.v for p in web_app.memory] == [100.0]
    assert web_sidecar.memory == []
    queries = sorted(q["query"] for q in handler.queries)
    assert 'namespace="shop",container!=""' in queries[0]
    assert "[5m]" in queries[1]


def test_namespace_history_error():
    """A failing series query fails the whole namespace history."""
    handler = QueryHandler(
        {"container_cpu_usage_seconds_total": httpx.Response(502, text="bad gateway")}
    )

    with pytest.raises(prometheus.PrometheusError):
        _client(handler).get_namespace_history(
            "shop", prometheus.parse_time_range("1h")
        )


def test_history_serialization():
    """History results serialize with short sample keys."""
    result = prometheus.HistoryResult(cpu=[prometheus.DataPoint(t=1, v=2.5)])

    assert result.model_dump(mode="json", by_alias=True) == {
        "cpu": [{"t": 1, "v": 2.5}],
        "memory": [],
    }
