"""HTTP server for the KubeAdjust backend."""

import contextlib
import functools
import json
import logging
import os
import pathlib
import time
from collections.abc import Callable
from typing import Any

import httpx
import prometheus_client
import pydantic
import starlette.applications
import starlette.middleware
import starlette.middleware.cors
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import fanout, kubeapi, prometheus
from .resources.namespaces import DEFAULT_SCAN_CONCURRENCY, list_namespaces
from .resources.nodes import aggregate_nodes
from .resources.workloads import DEFAULT_KUBELET_CONCURRENCY, aggregate_workloads
from .telemetry import BackendMetrics

CONFIG_ENV_VAR = "KUBEADJUST_CONFIG_PATH"
logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "

Endpoint = Callable[[starlette.requests.Request], starlette.responses.Response]


class BackendConfig(pydantic.BaseModel):
    """Configuration for the KubeAdjust backend."""

    kube_api_server: str = pydantic.Field(
        kubeapi.DEFAULT_API_SERVER,
        description="Base URL of the Kubernetes API server",
    )
    kube_timeout: float = pydantic.Field(
        kubeapi.DEFAULT_TIMEOUT,
        description="Kubernetes API request timeout in seconds",
        gt=0,
    )
    kube_insecure_tls: bool = pydantic.Field(
        False,
        description="Skip TLS verification of the API server certificate",
    )
    kube_ca_file: str | None = pydantic.Field(
        None,
        description="CA bundle used to verify the API server certificate",
    )
    prometheus_url: str | None = pydantic.Field(
        None,
        description="Prometheus base URL; history endpoints are disabled without it",
    )
    prometheus_timeout: float = pydantic.Field(
        prometheus.client.DEFAULT_TIMEOUT,
        description="Prometheus request timeout in seconds",
        gt=0,
    )
    allowed_origins: list[str] = pydantic.Field(
        default_factory=lambda: ["*"],
        description="CORS allowed origins",
    )
    kubelet_concurrency: int = pydantic.Field(
        DEFAULT_KUBELET_CONCURRENCY,
        description="Maximum concurrent kubelet summary calls per request",
        gt=0,
    )
    namespace_scan_concurrency: int = pydantic.Field(
        DEFAULT_SCAN_CONCURRENCY,
        description="Maximum concurrent pod probes when listing namespaces",
        gt=0,
    )
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for the backend's own metrics endpoint",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")

    @pydantic.field_validator("prometheus_url")
    @classmethod
    def _normalize_prometheus_url(cls, value: str | None) -> str | None:
        if not value:
            return None
        return prometheus.client.normalize_url(value)


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> BackendConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return BackendConfig(**data)


def _dump(value: Any) -> Any:
    if isinstance(value, pydantic.BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def json_ok(payload: Any) -> starlette.responses.JSONResponse:
    return starlette.responses.JSONResponse(_dump(payload))


def json_error(message: str, status_code: int) -> starlette.responses.JSONResponse:
    return starlette.responses.JSONResponse({"error": message}, status_code=status_code)


def bearer_token(request: starlette.requests.Request) -> str | None:
    """Extract the bearer token from the Authorization header, if any."""
    auth = request.headers.get("authorization", "")
    if not auth.startswith(BEARER_PREFIX):
        return None
    return auth[len(BEARER_PREFIX) :].strip()


def create_starlette_app(
    config: BackendConfig,
    http: httpx.Client,
    history_client: prometheus.PrometheusClient | None,
    metrics: BackendMetrics,
) -> starlette.applications.Starlette:
    """Create the Starlette application serving the dashboard API.

    Args:
        config: Validated backend configuration.
        http: Shared Kubernetes API HTTP client.
        history_client: Prometheus client, or None when not configured.
        metrics: Backend telemetry recorder.

    Returns:
        Configured Starlette application.
    """

    def instrumented(route: str, endpoint: Endpoint) -> Endpoint:
        """Log and record request count and latency under ``route``."""

        @functools.wraps(endpoint)
        def wrapper(request: starlette.requests.Request):
            start_time = time.perf_counter()
            status = 500
            try:
                response = endpoint(request)
                status = response.status_code
                return response
            finally:
                duration = time.perf_counter() - start_time
                metrics.record_request(route, status, duration)
                logger.info(
                    "HTTP request",
                    client_ip=request.client.host if request.client else "unknown",
                    method=request.method,
                    path=request.url.path,
                    status=status,
                    duration_seconds=round(duration, 3),
                )

        return wrapper

    def authenticated(
        handler: Callable[
            [starlette.requests.Request, kubeapi.KubeApiClient],
            starlette.responses.Response,
        ],
    ) -> Endpoint:
        """Reject requests without a bearer token; hand the rest a client."""

        @functools.wraps(handler)
        def wrapper(request: starlette.requests.Request):
            token = bearer_token(request)
            if not token:
                return json_error("missing bearer token", 401)
            return handler(request, kubeapi.KubeApiClient(http, token))

        return wrapper

    def healthz(request: starlette.requests.Request) -> starlette.responses.Response:
        return starlette.responses.PlainTextResponse("ok")

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Serve backend telemetry in Prometheus exposition format."""
        return starlette.responses.Response(
            content=prometheus_client.generate_latest(metrics.registry),
            media_type=prometheus_client.CONTENT_TYPE_LATEST,
        )

    @authenticated
    def verify_token(request, client):
        try:
            client.verify_token()
        except kubeapi.KubeApiError as e:
            logger.warning("Token verification failed", error=str(e))
            return json_error("authentication failed", 401)
        return json_ok({"status": "ok"})

    @authenticated
    def nodes(request, client):
        try:
            return json_ok(aggregate_nodes(client, metrics=metrics))
        except fanout.RequiredFetchError:
            return json_error("internal server error", 500)

    @authenticated
    def namespaces(request, client):
        try:
            return json_ok(
                list_namespaces(
                    client,
                    concurrency=config.namespace_scan_concurrency,
                    metrics=metrics,
                )
            )
        except fanout.RequiredFetchError:
            return json_error("internal server error", 500)

    @authenticated
    def deployments(request, client):
        namespace = request.path_params["namespace"]
        try:
            return json_ok(
                aggregate_workloads(
                    client,
                    namespace,
                    prometheus_available=history_client is not None,
                    kubelet_concurrency=config.kubelet_concurrency,
                    metrics=metrics,
                )
            )
        except fanout.RequiredFetchError:
            return json_error("internal server error", 500)

    @authenticated
    def pod_metrics(request, client):
        namespace = request.path_params["namespace"]
        try:
            return json_ok(client.get_pod_metrics_raw(namespace))
        except kubeapi.KubeApiError as e:
            logger.warning("Pod metrics unavailable", namespace=namespace, error=str(e))
            metrics.record_upstream_failure("pod_metrics", required=True)
            return json_error("metrics-server unavailable", 503)

    @authenticated
    def namespace_history(request, client):
        namespace = request.path_params["namespace"]
        if not prometheus.is_valid_label_value(namespace):
            return json_error("invalid parameter", 400)
        if history_client is None:
            return json_error("prometheus not configured", 503)

        tr = prometheus.parse_time_range(request.query_params.get("range"))
        try:
            return json_ok(history_client.get_namespace_history(namespace, tr))
        except prometheus.PrometheusError as e:
            logger.warning(
                "Prometheus namespace query failed", namespace=namespace, error=str(e)
            )
            metrics.record_upstream_failure("prometheus", required=True)
            return json_error("failed to query prometheus", 502)

    @authenticated
    def container_history(request, client):
        namespace = request.path_params["namespace"]
        pod = request.path_params["pod"]
        container = request.path_params["container"]
        if not all(
            prometheus.is_valid_label_value(v) for v in (namespace, pod, container)
        ):
            return json_error("invalid parameter", 400)
        if history_client is None:
            return json_error("prometheus not configured", 503)

        tr = prometheus.parse_time_range(request.query_params.get("range"))
        try:
            return json_ok(
                history_client.get_container_history(namespace, pod, container, tr)
            )
        except prometheus.PrometheusError as e:
            logger.warning(
                "Prometheus query failed",
                namespace=namespace,
                pod=pod,
                container=container,
                error=str(e),
            )
            metrics.record_upstream_failure("prometheus", required=True)
            return json_error("failed to query prometheus", 502)

    api_routes = {
        "/api/auth/verify": verify_token,
        "/api/nodes": nodes,
        "/api/namespaces": namespaces,
        "/api/namespaces/{namespace}/deployments": deployments,
        "/api/namespaces/{namespace}/metrics": pod_metrics,
        "/api/namespaces/{namespace}/prometheus": namespace_history,
        "/api/namespaces/{namespace}/prometheus/{pod}/{container}": container_history,
    }

    routes = [
        starlette.routing.Route("/healthz", healthz, methods=["GET"]),
        starlette.routing.Route(config.metrics_path, metrics_endpoint, methods=["GET"]),
    ]
    routes.extend(
        starlette.routing.Route(path, instrumented(path, endpoint), methods=["GET"])
        for path, endpoint in api_routes.items()
    )

    middleware = [
        starlette.middleware.Middleware(
            starlette.middleware.cors.CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
            allow_credentials=False,
            max_age=300,
        ),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(app):
        yield
        http.close()
        if history_client is not None:
            history_client.close()
        logger.info("Closed upstream clients")

    return starlette.applications.Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )


def create_backend(config: BackendConfig) -> starlette.applications.Starlette:
    """Construct the backend ASGI app from validated config."""
    if config.kube_insecure_tls:
        logger.warning("TLS verification disabled for the Kubernetes API")
    if "*" in config.allowed_origins:
        logger.warning("CORS allows any origin", allowed_origins=config.allowed_origins)

    http = kubeapi.create_http_client(
        config.kube_api_server,
        timeout=config.kube_timeout,
        insecure_tls=config.kube_insecure_tls,
        ca_file=config.kube_ca_file,
    )
    logger.info("Created shared Kubernetes client", api_server=config.kube_api_server)

    history_client = None
    if config.prometheus_url:
        history_client = prometheus.PrometheusClient(
            config.prometheus_url,
            timeout=config.prometheus_timeout,
        )
        logger.info("Created Prometheus client", base_url=config.prometheus_url)
    else:
        logger.info("Prometheus not configured, history endpoints disabled")

    return create_starlette_app(
        config=config,
        http=http,
        history_client=history_client,
        metrics=BackendMetrics(),
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the backend ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_backend(config)
