"""Backend self-instrumentation.

Request and upstream-failure metrics kept on a private registry (not the
global one) and served by the backend's own metrics endpoint.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram


class BackendMetrics:
    """Prometheus metrics describing the backend's own behavior."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics on ``registry`` or on a fresh private registry."""
        self.registry = registry or CollectorRegistry()

        self.http_requests = Counter(
            "kubeadjust_http_requests",
            "HTTP requests served, by route and status code",
            labelnames=["route", "status"],
            registry=self.registry,
        )
        self.http_request_duration = Histogram(
            "kubeadjust_http_request_duration_seconds",
            "HTTP request handling time in seconds",
            labelnames=["route"],
            registry=self.registry,
        )
        self.upstream_failures = Counter(
            "kubeadjust_upstream_failures",
            "Failed upstream fetches, by source and failure policy",
            labelnames=["source", "policy"],
            registry=self.registry,
        )

    def record_request(self, route: str, status: int, duration: float) -> None:
        self.http_requests.labels(route=route, status=str(status)).inc()
        self.http_request_duration.labels(route=route).observe(duration)

    def record_upstream_failure(self, source: str, required: bool) -> None:
        policy = "required" if required else "best_effort"
        self.upstream_failures.labels(source=source, policy=policy).inc()
