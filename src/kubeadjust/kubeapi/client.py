"""Kubernetes API client.

Provides a thin typed GET wrapper over a shared httpx connection pool that
forwards the caller's bearer token and validates responses with Pydantic
models.
"""

import ssl
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
import pydantic
import structlog

from .types import (
    CronJob,
    Deployment,
    Job,
    Namespace,
    Node,
    NodeMetrics,
    NodeSummary,
    PersistentVolumeClaim,
    Pod,
    PodMetrics,
    ReplicaSet,
    StatefulSet,
)

logger = structlog.get_logger(__name__)

DEFAULT_API_SERVER = "https://kubernetes.default.svc"

DEFAULT_TIMEOUT = 15.0

# Connection pool shared by every request handled by the process.
MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 20
KEEPALIVE_EXPIRY = 90.0

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def _segment(value: str) -> str:
    """Percent-encode a name for use as a single URL path segment."""
    return quote(value, safe="")


class KubeApiError(Exception):
    """Raised when a Kubernetes API source is unavailable.

    Covers transport failures, timeouts, non-2xx responses and responses
    that cannot be decoded or validated.
    """


def create_http_client(
    api_server: str = DEFAULT_API_SERVER,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    insecure_tls: bool = False,
    ca_file: str | Path | None = None,
) -> httpx.Client:
    """Build the process-wide HTTP client used for all Kubernetes API calls.

    The returned client owns the connection pool. It is safe to share across
    threads and is injected into every per-request :class:`KubeApiClient`.

    Args:
        api_server: Base URL of the Kubernetes API server.
        timeout: Per-call timeout in seconds.
        insecure_tls: Skip TLS certificate verification.
        ca_file: Optional CA bundle used to verify the API server certificate.

    Raises:
        ValueError: If api_server is empty or timeout is not positive.
    """
    if not api_server:
        msg = "api_server cannot be empty"
        raise ValueError(msg)
    if timeout <= 0:
        msg = "timeout must be positive"
        raise ValueError(msg)

    verify: bool | ssl.SSLContext = True
    if insecure_tls:
        verify = False
    elif ca_file:
        verify = ssl.create_default_context(cafile=str(ca_file))

    return httpx.Client(
        base_url=api_server.rstrip("/"),
        headers={"Accept": "application/json"},
        timeout=timeout,
        verify=verify,
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
    )


class KubeApiClient:
    """Per-request handle for the Kubernetes API.

    Wraps the shared httpx client with the caller's bearer token. Handles are
    cheap to create; the connection pool belongs to the injected client and
    is never closed here.
    """

    def __init__(self, http: httpx.Client, token: str):
        """Initialize the API client.

        Args:
            http: Shared HTTP client created by :func:`create_http_client`.
            token: Bearer token forwarded verbatim on every call.
        """
        self._http = http
        self._headers = {"Authorization": f"Bearer {token}"}

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        parse: Callable[[dict[str, Any]], Any] | None = None,
    ) -> Any:
        """Make a GET request to the Kubernetes API.

        Handles request execution, status checking, JSON decoding and
        optional response validation. Every failure is reported as
        :class:`KubeApiError`.

        Args:
            endpoint: API path (e.g., "/api/v1/nodes").
            params: Optional query parameters.
            parse: Optional function converting the decoded body.

        Returns:
            The decoded JSON body, or the result of ``parse`` applied to it.

        Raises:
            KubeApiError: If the request fails or the body is unusable.
        """
        start_time = time.time()
        params = params or {}

        try:
            logger.debug(
                "Making API request",
                method="GET",
                endpoint=endpoint,
                params=params,
            )
            response = self._http.get(endpoint, params=params, headers=self._headers)
            response.raise_for_status()
            data = response.json()
            result = parse(data) if parse is not None else data
        except (httpx.HTTPError, ValueError) as e:
            # pydantic.ValidationError and JSON decode errors are ValueErrors.
            duration = time.time() - start_time
            logger.warning(
                "API request failed",
                endpoint=endpoint,
                error=str(e),
                duration_seconds=round(duration, 3),
            )
            msg = f"kubernetes api {endpoint}: {e}"
            raise KubeApiError(msg) from e

        duration = time.time() - start_time
        logger.debug("API request completed", duration_seconds=round(duration, 3))
        return result

    def _list(
        self,
        endpoint: str,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
    ) -> list[ModelT]:
        """Fetch a list endpoint and validate each item against ``model``."""

        def parse(data: dict[str, Any]) -> list[ModelT]:
            return [model.model_validate(item) for item in data.get("items") or []]

        return self._make_request(endpoint, params=params, parse=parse)

    def verify_token(self) -> None:
        """Check that the token can reach the API server.

        Raises:
            KubeApiError: If the API server rejects the token or is unreachable.
        """
        self._make_request("/api")

    def list_namespaces(self) -> list[Namespace]:
        return self._list("/api/v1/namespaces", Namespace)

    def list_pods(self, namespace: str, limit: int | None = None) -> list[Pod]:
        """List pods in a namespace, optionally capped to ``limit`` items."""
        params = {}
        if limit is not None:
            params["limit"] = limit
        return self._list(
            f"/api/v1/namespaces/{_segment(namespace)}/pods", Pod, params=params
        )

    def list_all_pods(self) -> list[Pod]:
        """List pods across all namespaces."""
        return self._list("/api/v1/pods", Pod)

    def list_deployments(self, namespace: str) -> list[Deployment]:
        return self._list(
            f"/apis/apps/v1/namespaces/{_segment(namespace)}/deployments",
            Deployment,
        )

    def list_stateful_sets(self, namespace: str) -> list[StatefulSet]:
        return self._list(
            f"/apis/apps/v1/namespaces/{_segment(namespace)}/statefulsets",
            StatefulSet,
        )

    def list_replica_sets(self, namespace: str) -> list[ReplicaSet]:
        return self._list(
            f"/apis/apps/v1/namespaces/{_segment(namespace)}/replicasets",
            ReplicaSet,
        )

    def list_jobs(self, namespace: str) -> list[Job]:
        return self._list(
            f"/apis/batch/v1/namespaces/{_segment(namespace)}/jobs", Job
        )

    def list_cron_jobs(self, namespace: str) -> list[CronJob]:
        return self._list(
            f"/apis/batch/v1/namespaces/{_segment(namespace)}/cronjobs", CronJob
        )

    def list_pvcs(self, namespace: str) -> list[PersistentVolumeClaim]:
        return self._list(
            f"/api/v1/namespaces/{_segment(namespace)}/persistentvolumeclaims",
            PersistentVolumeClaim,
        )

    def list_nodes(self) -> list[Node]:
        return self._list("/api/v1/nodes", Node)

    def list_pod_metrics(self, namespace: str) -> list[PodMetrics]:
        return self._list(
            f"/apis/metrics.k8s.io/v1beta1/namespaces/{_segment(namespace)}/pods",
            PodMetrics,
        )

    def get_pod_metrics_raw(self, namespace: str) -> dict[str, Any]:
        """Fetch the metrics-server PodMetricsList of a namespace, undecoded."""
        return self._make_request(
            f"/apis/metrics.k8s.io/v1beta1/namespaces/{_segment(namespace)}/pods"
        )

    def list_node_metrics(self) -> list[NodeMetrics]:
        return self._list("/apis/metrics.k8s.io/v1beta1/nodes", NodeMetrics)

    def get_node_summary(self, node_name: str) -> NodeSummary:
        """Fetch the kubelet stats/summary through the API server node proxy.

        Requires ``nodes/proxy`` get permission.
        """
        return self._make_request(
            f"/api/v1/nodes/{_segment(node_name)}/proxy/stats/summary",
            parse=NodeSummary.model_validate,
        )
