"""Kubernetes API client package.

Provides a lightweight HTTP client for the Kubernetes API server, the
metrics-server extension and kubelet stats (via the node proxy). It returns
raw, validated API response types with minimal processing; aggregation is
handled by the resources package.

Exports:
    KubeApiClient: Per-request client forwarding the caller's bearer token.
    KubeApiError: Raised when any API source is unavailable.
    create_http_client: Builds the shared, process-wide connection pool.
    types: Module containing Pydantic models for API responses.
    DEFAULT_API_SERVER: In-cluster API server URL.
    DEFAULT_TIMEOUT: Default per-call timeout.
"""

from . import types
from .client import (
    DEFAULT_API_SERVER,
    DEFAULT_TIMEOUT,
    KubeApiClient,
    KubeApiError,
    create_http_client,
)

__all__ = [
    "DEFAULT_API_SERVER",
    "DEFAULT_TIMEOUT",
    "KubeApiClient",
    "KubeApiError",
    "create_http_client",
    "types",
]
