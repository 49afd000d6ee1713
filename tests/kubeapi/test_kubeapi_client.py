"""Tests for the Kubernetes API client.

Requests are served by an httpx.MockTransport so the real request building,
status handling, JSON decoding and model validation are exercised.
"""

import httpx
import pytest

from kubeadjust.kubeapi import (
    DEFAULT_API_SERVER,
    KubeApiClient,
    KubeApiError,
    create_http_client,
)

API_SERVER = "https://k8s.test"


class RecordingHandler:
    """MockTransport handler answering from a path -> (status, body) table."""

    def __init__(self, routes: dict[str, tuple[int, object]]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get(request.url.path, (404, {"kind": "Status"}))
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)


def _client(handler: RecordingHandler, token: str = "secret-token") -> KubeApiClient:
    http = httpx.Client(base_url=API_SERVER, transport=httpx.MockTransport(handler))
    return KubeApiClient(http, token)


# ---------------------------------------------------------------------------
# create_http_client
# ---------------------------------------------------------------------------


def test_create_http_client_defaults():
    """The shared client targets the API server and asks for JSON."""
    http = create_http_client()

    assert str(http.base_url).rstrip("/") == DEFAULT_API_SERVER
    assert http.headers["Accept"] == "application/json"
    http.close()


def test_create_http_client_strips_trailing_slash():
    """Trailing slashes on the API server URL are ignored."""
    http = create_http_client("https://k8s.test/", insecure_tls=True)

    assert str(http.base_url).rstrip("/") == "https://k8s.test"
    http.close()


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"api_server": ""}, "api_server cannot be empty"),
        ({"timeout": 0}, "timeout must be positive"),
        ({"timeout": -1.0}, "timeout must be positive"),
    ],
)
def test_create_http_client_validation(kwargs: dict, message: str):
    """Empty servers and non-positive timeouts are rejected."""
    with pytest.raises(ValueError, match=message):
        create_http_client(**kwargs)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def test_bearer_token_forwarded():
    """The caller's token is sent verbatim as a bearer token."""
    handler = RecordingHandler({"/api": (200, {"kind": "APIVersions"})})

    _client(handler, token="abc.def.ghi").verify_token()

    (request,) = handler.requests
    assert request.headers["Authorization"] == "Bearer abc.def.ghi"


def test_list_pods_with_limit():
    """The pod probe passes limit as a query parameter."""
    handler = RecordingHandler(
        {
            "/api/v1/namespaces/shop/pods": (
                200,
                {"items": [{"metadata": {"name": "web-1", "namespace": "shop"}}]},
            )
        }
    )

    pods = _client(handler).list_pods("shop", limit=1)

    assert [p.metadata.name for p in pods] == ["web-1"]
    assert handler.requests[0].url.params["limit"] == "1"


def test_list_null_items():
    """A list response with null items yields an empty list."""
    handler = RecordingHandler({"/api/v1/nodes": (200, {"items": None})})

    assert _client(handler).list_nodes() == []


def test_unread_fields_are_ignored():
    """Fields the backend never reads are dropped during validation."""
    pod_body = {
        "metadata": {"name": "web-1"},
        "spec": {"initContainers": [{"name": "init"}], "containers": [{"name": "app"}]},
        "status": {"phase": "Running", "containerStatuses": [{"name": "app"}]},
    }
    handler = RecordingHandler(
        {
            "/api/v1/namespaces/shop/pods": (200, {"items": [pod_body]}),
            "/apis/batch/v1/namespaces/shop/jobs": (
                200,
                {"items": [{"metadata": {"name": "j"}, "status": {"active": 1}}]},
            ),
        }
    )
    client = _client(handler)

    (pod,) = client.list_pods("shop")
    (job,) = client.list_jobs("shop")

    assert [c.name for c in pod.spec.containers] == ["app"]
    assert pod.status.phase == "Running"
    assert not hasattr(pod.spec, "init_containers")
    assert set(job.model_dump()) == {"metadata"}


@pytest.mark.parametrize(
    ("method", "args", "path"),
    [
        ("list_namespaces", (), "/api/v1/namespaces"),
        ("list_all_pods", (), "/api/v1/pods"),
        ("list_deployments", ("shop",), "/apis/apps/v1/namespaces/shop/deployments"),
        ("list_stateful_sets", ("shop",), "/apis/apps/v1/namespaces/shop/statefulsets"),
        ("list_replica_sets", ("shop",), "/apis/apps/v1/namespaces/shop/replicasets"),
        ("list_jobs", ("shop",), "/apis/batch/v1/namespaces/shop/jobs"),
        ("list_cron_jobs", ("shop",), "/apis/batch/v1/namespaces/shop/cronjobs"),
        (
            "list_pvcs",
            ("shop",),
            "/api/v1/namespaces/shop/persistentvolumeclaims",
        ),
        (
            "list_pod_metrics",
            ("shop",),
            "/apis/metrics.k8s.io/v1beta1/namespaces/shop/pods",
        ),
        ("list_node_metrics", (), "/apis/metrics.k8s.io/v1beta1/nodes"),
    ],
)
def test_list_endpoints(method: str, args: tuple, path: str):
    """Each list operation reads its API path."""
    handler = RecordingHandler({path: (200, {"items": [{"metadata": {"name": "x"}}]})})

    items = getattr(_client(handler), method)(*args)

    assert [item.metadata.name for item in items] == ["x"]
    assert handler.requests[0].url.path == path


def test_node_summary_volume_key():
    """The kubelet's singular "volume" key populates pod volumes."""
    handler = RecordingHandler(
        {
            "/api/v1/nodes/node-a/proxy/stats/summary": (
                200,
                {
                    "pods": [
                        {
                            "podRef": {"name": "web-1", "namespace": "shop"},
                            "volume": [{"name": "data", "usedBytes": 42}],
                        }
                    ]
                },
            )
        }
    )

    summary = _client(handler).get_node_summary("node-a")

    (pod,) = summary.pods
    assert pod.pod_ref.name == "web-1"
    assert [(v.name, v.used_bytes) for v in pod.volumes] == [("data", 42)]


def test_namespace_is_a_single_path_segment():
    """Reserved characters in a namespace are escaped, never read as a query."""
    handler = RecordingHandler({})

    with pytest.raises(KubeApiError):
        _client(handler).list_pods("a?b")

    (request,) = handler.requests
    assert request.url.raw_path == b"/api/v1/namespaces/a%3Fb/pods"
    assert not request.url.params


def test_get_pod_metrics_raw():
    """Raw pod metrics are returned as decoded JSON."""
    body = {"kind": "PodMetricsList", "items": [{"metadata": {"name": "web-1"}}]}
    handler = RecordingHandler(
        {"/apis/metrics.k8s.io/v1beta1/namespaces/shop/pods": (200, body)}
    )

    assert _client(handler).get_pod_metrics_raw("shop") == body


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_http_error_raises_kube_api_error():
    """A 403 response is reported as KubeApiError."""
    handler = RecordingHandler({"/api/v1/nodes": (403, {"reason": "Forbidden"})})

    with pytest.raises(KubeApiError, match="/api/v1/nodes"):
        _client(handler).list_nodes()


def test_invalid_json_raises_kube_api_error():
    """An undecodable body is reported as KubeApiError."""
    handler = RecordingHandler({"/api/v1/nodes": (200, b"<html>not json</html>")})

    with pytest.raises(KubeApiError):
        _client(handler).list_nodes()


def test_invalid_shape_raises_kube_api_error():
    """A body that fails model validation is reported as KubeApiError."""
    handler = RecordingHandler(
        {"/api/v1/nodes": (200, {"items": [{"metadata": {"labels": ["not", "a", "map"]}}]})}
    )

    with pytest.raises(KubeApiError):
        _client(handler).list_nodes()


def test_transport_error_raises_kube_api_error():
    """Connection failures are reported as KubeApiError."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.Client(base_url=API_SERVER, transport=httpx.MockTransport(handler))

    with pytest.raises(KubeApiError) as exc_info:
        KubeApiClient(http, "token").verify_token()

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_error_message_omits_token():
    """Error messages name the endpoint without leaking the token."""
    handler = RecordingHandler({"/api": (401, {"message": "Unauthorized"})})

    with pytest.raises(KubeApiError) as exc_info:
        _client(handler, token="do-not-log").verify_token()

    assert "do-not-log" not in str(exc_info.value)
