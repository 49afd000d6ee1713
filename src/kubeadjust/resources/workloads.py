"""Per-namespace workload aggregation.

Fetches pods and the auxiliary sources of a namespace, resolves pod
ownership, joins metrics and kubelet storage stats, and emits one
DeploymentDetail per Deployment, StatefulSet and CronJob.

Failure policy:
- pods and deployments are required; their failure aborts the request.
- stateful sets, cron jobs, replica sets, jobs, pod metrics, PVCs and every
  kubelet summary are best-effort; their failure only removes data.
"""

from collections import defaultdict

import structlog

from .. import fanout, kubeapi
from ..kubeapi import types as kube
from ..telemetry import BackendMetrics
from .ownership import resolve_owners
from .pods import MetricsIndex, build_metrics_index, build_pod_details, build_pvc_index
from .storage import index_node_summary, merge_storage_stats
from .types import (
    DeploymentDetail,
    PodStorageStats,
    WorkloadKey,
    WorkloadKind,
    WorkloadResponse,
)

logger = structlog.get_logger(__name__)

DEFAULT_KUBELET_CONCURRENCY = 5


def _node_names(pods: list[kube.Pod]) -> list[str]:
    """Distinct node names hosting the pods, in first-seen order."""
    return list(dict.fromkeys(p.spec.node_name for p in pods if p.spec.node_name))


def fetch_storage_stats(
    client: kubeapi.KubeApiClient,
    namespace: str,
    pods: list[kube.Pod],
    *,
    concurrency: int = DEFAULT_KUBELET_CONCURRENCY,
    metrics: BackendMetrics | None = None,
) -> dict[str, PodStorageStats]:
    """Collect kubelet storage stats for the namespace's pods.

    Queries each node hosting at least one pod once, with at most
    ``concurrency`` kubelet calls in flight. Nodes whose summary cannot be
    fetched contribute nothing.
    """
    summaries = fanout.map_best_effort(
        client.get_node_summary,
        _node_names(pods),
        source="node_summary",
        max_workers=concurrency,
        metrics=metrics,
    )
    return merge_storage_stats(
        index_node_summary(summary, namespace) for summary in summaries
    )


def _group_pods(
    pods: list[kube.Pod],
    owners: dict[str, WorkloadKey],
) -> dict[WorkloadKey, list[kube.Pod]]:
    grouped: dict[WorkloadKey, list[kube.Pod]] = defaultdict(list)
    for pod in pods:
        if (key := owners.get(pod.metadata.name)) is not None:
            grouped[key].append(pod)
    return grouped


def aggregate_workloads(
    client: kubeapi.KubeApiClient,
    namespace: str,
    *,
    prometheus_available: bool = False,
    kubelet_concurrency: int = DEFAULT_KUBELET_CONCURRENCY,
    metrics: BackendMetrics | None = None,
) -> WorkloadResponse:
    """Build the workload view of a namespace.

    Args:
        client: Kubernetes API client carrying the caller's token.
        namespace: Namespace to aggregate.
        prometheus_available: Whether a Prometheus instance is configured.
        kubelet_concurrency: Maximum concurrent kubelet summary calls.
        metrics: Optional metrics recorder for upstream failures.

    Returns:
        WorkloadResponse with Deployments, then StatefulSets, then CronJobs.

    Raises:
        fanout.RequiredFetchError: If pods or deployments cannot be listed.
    """
    pods = fanout.fetch_required(
        "pods", lambda: client.list_pods(namespace), metrics=metrics
    )

    fetched = fanout.fetch_all(
        required={"deployments": lambda: client.list_deployments(namespace)},
        best_effort={
            "stateful_sets": lambda: client.list_stateful_sets(namespace),
            "cron_jobs": lambda: client.list_cron_jobs(namespace),
            "replica_sets": lambda: client.list_replica_sets(namespace),
            "jobs": lambda: client.list_jobs(namespace),
            "pod_metrics": lambda: client.list_pod_metrics(namespace),
            "pvcs": lambda: client.list_pvcs(namespace),
        },
        metrics=metrics,
    )
    deployments: list[kube.Deployment] = fetched["deployments"]
    stateful_sets: list[kube.StatefulSet] | None = fetched["stateful_sets"]
    cron_jobs: list[kube.CronJob] | None = fetched["cron_jobs"]
    pod_metrics: list[kube.PodMetrics] | None = fetched["pod_metrics"]

    owners = resolve_owners(pods, fetched["replica_sets"], fetched["jobs"])

    metrics_available = pod_metrics is not None
    metrics_index: MetricsIndex = (
        build_metrics_index(pod_metrics) if pod_metrics is not None else {}
    )

    storage_stats = fetch_storage_stats(
        client,
        namespace,
        pods,
        concurrency=kubelet_concurrency,
        metrics=metrics,
    )
    pvc_index = build_pvc_index(fetched["pvcs"])
    grouped = _group_pods(pods, owners)

    def pod_details(kind: WorkloadKind, name: str):
        return build_pod_details(
            grouped.get(WorkloadKey(kind, name), []),
            metrics_index,
            storage_stats,
            pvc_index,
        )

    workloads: list[DeploymentDetail] = []

    for dep in deployments:
        workloads.append(
            DeploymentDetail(
                kind=WorkloadKind.DEPLOYMENT,
                name=dep.metadata.name,
                namespace=dep.metadata.namespace or namespace,
                replicas=dep.spec.replicas,
                ready_replicas=dep.status.ready_replicas,
                available_replicas=dep.status.available_replicas,
                pods=pod_details(WorkloadKind.DEPLOYMENT, dep.metadata.name),
            )
        )

    for ss in stateful_sets or []:
        # currentReplicas stands in while availableReplicas is unpopulated.
        available = ss.status.available_replicas or ss.status.current_replicas
        workloads.append(
            DeploymentDetail(
                kind=WorkloadKind.STATEFUL_SET,
                name=ss.metadata.name,
                namespace=namespace,
                replicas=ss.spec.replicas,
                ready_replicas=ss.status.ready_replicas,
                available_replicas=available,
                pods=pod_details(WorkloadKind.STATEFUL_SET, ss.metadata.name),
            )
        )

    for cj in cron_jobs or []:
        # CronJobs have no replicas; the active job count stands in.
        active = len(cj.status.active)
        workloads.append(
            DeploymentDetail(
                kind=WorkloadKind.CRON_JOB,
                name=cj.metadata.name,
                namespace=namespace,
                replicas=active,
                ready_replicas=active,
                available_replicas=active,
                pods=pod_details(WorkloadKind.CRON_JOB, cj.metadata.name),
            )
        )

    logger.info(
        "Aggregated workloads",
        namespace=namespace,
        workloads=len(workloads),
        pods=len(pods),
        metrics_available=metrics_available,
    )
    return WorkloadResponse(
        workloads=workloads,
        metrics_available=metrics_available,
        prometheus_available=prometheus_available,
    )
