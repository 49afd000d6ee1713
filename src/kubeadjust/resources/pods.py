"""Pod detail assembly.

Joins each pod's spec (requests and limits) with live metrics-server usage,
kubelet ephemeral storage and volume stats, and PVC objects into one
denormalized PodDetail. Every auxiliary source is optional: a missing source
leaves the matching fields unset instead of failing.
"""

from ..kubeapi import types as kube
from .quantity import ResourceKey, bytes_value, parse_resource, parse_storage_bytes
from .types import (
    ContainerResources,
    EmptyDirVolume,
    EphemeralStorageInfo,
    PodDetail,
    PodStorageStats,
    PvcVolume,
    ResourcePair,
    VolumeDetail,
)

MetricsIndex = dict[str, dict[str, kube.ContainerUsage]]


def build_metrics_index(pod_metrics: list[kube.PodMetrics]) -> MetricsIndex:
    """Index metrics-server samples by pod name, then container name."""
    index: MetricsIndex = {}
    for pm in pod_metrics:
        index[pm.metadata.name] = {cu.name: cu for cu in pm.containers}
    return index


def build_pvc_index(
    pvcs: list[kube.PersistentVolumeClaim] | None,
) -> dict[str, kube.PersistentVolumeClaim]:
    """Index persistent volume claims by claim name."""
    return {pvc.metadata.name: pvc for pvc in pvcs or []}


def _resource_pair(quantities: dict[str, str]) -> ResourcePair:
    return ResourcePair(
        cpu=parse_resource(quantities.get(ResourceKey.CPU.value, ""), is_cpu=True),
        memory=parse_resource(
            quantities.get(ResourceKey.MEMORY.value, ""), is_cpu=False
        ),
    )


def _ephemeral_storage(
    container: kube.Container,
    storage: PodStorageStats | None,
) -> EphemeralStorageInfo:
    info = EphemeralStorageInfo()
    key = ResourceKey.EPHEMERAL_STORAGE.value
    if request_raw := container.resources.requests.get(key, ""):
        info.request = parse_storage_bytes(request_raw)
    if limit_raw := container.resources.limits.get(key, ""):
        info.limit = parse_storage_bytes(limit_raw)
    if storage is not None and container.name in storage.container_ephemeral:
        info.usage = bytes_value(storage.container_ephemeral[container.name])
    return info


def _container_resources(
    container: kube.Container,
    pod_metrics: dict[str, kube.ContainerUsage] | None,
    storage: PodStorageStats | None,
) -> ContainerResources:
    usage = None
    if pod_metrics is not None and container.name in pod_metrics:
        usage = _resource_pair(pod_metrics[container.name].usage)

    return ContainerResources(
        name=container.name,
        requests=_resource_pair(container.resources.requests),
        limits=_resource_pair(container.resources.limits),
        usage=usage,
        ephemeral_storage=_ephemeral_storage(container, storage),
    )


def _volume_detail(
    volume: kube.Volume,
    storage: PodStorageStats | None,
    pvc_index: dict[str, kube.PersistentVolumeClaim],
) -> VolumeDetail | None:
    """Describe a PVC or emptyDir volume; other volume kinds yield None."""
    stats = storage.volumes.get(volume.name) if storage is not None else None

    if volume.persistent_volume_claim is not None:
        claim_name = volume.persistent_volume_claim.claim_name
        detail = PvcVolume(name=volume.name, pvc_name=claim_name)
        if (pvc := pvc_index.get(claim_name)) is not None:
            detail.storage_class = pvc.spec.storage_class_name
            detail.access_modes = pvc.spec.access_modes
            capacity = pvc.status.capacity.get(ResourceKey.STORAGE.value)
            if capacity is not None:
                detail.capacity = parse_storage_bytes(capacity)
        if stats is not None:
            detail.usage = bytes_value(stats.used_bytes)
            detail.available = bytes_value(stats.available_bytes)
        return detail

    if volume.empty_dir is not None:
        detail = EmptyDirVolume(name=volume.name, medium=volume.empty_dir.medium)
        if volume.empty_dir.size_limit:
            detail.size_limit = parse_storage_bytes(volume.empty_dir.size_limit)
        if stats is not None:
            detail.usage = bytes_value(stats.used_bytes)
            if stats.capacity_bytes > 0:
                detail.capacity = bytes_value(stats.capacity_bytes)
        return detail

    return None


def build_pod_details(
    pods: list[kube.Pod],
    metrics_index: MetricsIndex,
    storage_stats: dict[str, PodStorageStats],
    pvc_index: dict[str, kube.PersistentVolumeClaim],
) -> list[PodDetail]:
    """Build PodDetail records for the pods of one workload.

    Args:
        pods: Pods grouped under one workload.
        metrics_index: Live usage by pod then container name.
        storage_stats: Kubelet storage stats by pod name.
        pvc_index: Persistent volume claims by claim name.

    Returns:
        One PodDetail per pod, in input order.
    """
    details = []
    for pod in pods:
        pod_metrics = metrics_index.get(pod.metadata.name)
        storage = storage_stats.get(pod.metadata.name)

        containers = [
            _container_resources(container, pod_metrics, storage)
            for container in pod.spec.containers
        ]
        volumes = []
        for volume in pod.spec.volumes:
            detail = _volume_detail(volume, storage, pvc_index)
            if detail is not None:
                volumes.append(detail)

        details.append(
            PodDetail(
                name=pod.metadata.name,
                phase=pod.status.phase,
                containers=containers,
                volumes=volumes,
            )
        )
    return details
