"""Kubelet storage stats indexing.

A kubelet summary covers every pod on its node regardless of namespace.
These helpers keep the pods of one namespace and index their container
ephemeral usage and volume stats by pod name.
"""

from collections.abc import Iterable

from ..kubeapi import types as kube
from .types import PodStorageStats


def _fs_used(stats: kube.FsStats | None) -> int:
    return stats.used_bytes if stats is not None else 0


def index_node_summary(
    summary: kube.NodeSummary,
    namespace: str,
) -> dict[str, PodStorageStats]:
    """Index one node summary by pod name for a single namespace.

    Container ephemeral usage is rootfs plus logs bytes; a missing section
    counts as zero.

    Args:
        summary: Kubelet stats/summary of one node.
        namespace: Namespace whose pods are kept.

    Returns:
        Mapping of pod name to its storage stats.
    """
    by_pod: dict[str, PodStorageStats] = {}
    for pod_stats in summary.pods:
        if pod_stats.pod_ref.namespace != namespace:
            continue
        stats = PodStorageStats()
        for container in pod_stats.containers:
            stats.container_ephemeral[container.name] = _fs_used(
                container.rootfs
            ) + _fs_used(container.logs)
        for volume in pod_stats.volumes:
            stats.volumes[volume.name] = volume
        by_pod[pod_stats.pod_ref.name] = stats
    return by_pod


def merge_storage_stats(
    partials: Iterable[dict[str, PodStorageStats]],
) -> dict[str, PodStorageStats]:
    """Merge per-node partial indexes into one pod-name index."""
    merged: dict[str, PodStorageStats] = {}
    for partial in partials:
        merged.update(partial)
    return merged
