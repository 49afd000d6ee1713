"""Namespace listing restricted to namespaces that run pods."""

from .. import fanout, kubeapi
from ..telemetry import BackendMetrics
from .types import NamespaceItem

DEFAULT_SCAN_CONCURRENCY = 10


def list_namespaces(
    client: kubeapi.KubeApiClient,
    *,
    concurrency: int = DEFAULT_SCAN_CONCURRENCY,
    metrics: BackendMetrics | None = None,
) -> list[NamespaceItem]:
    """List namespaces holding at least one pod, sorted by name.

    The namespace list is required. Each namespace is probed with a
    single-item pod list; a namespace whose probe fails is left out.

    Raises:
        fanout.RequiredFetchError: If namespaces cannot be listed.
    """
    namespaces = fanout.fetch_required(
        "namespaces", client.list_namespaces, metrics=metrics
    )
    names = [ns.metadata.name for ns in namespaces]

    def has_pods(name: str) -> tuple[str, bool]:
        return name, len(client.list_pods(name, limit=1)) > 0

    probes = fanout.map_best_effort(
        has_pods,
        names,
        source="namespace_pods",
        max_workers=concurrency,
        metrics=metrics,
    )
    return sorted(
        (NamespaceItem(name=name) for name, populated in probes if populated),
        key=lambda item: item.name,
    )
