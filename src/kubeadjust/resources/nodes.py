"""Cluster-wide node aggregation.

Sums container requests and limits of every live pod per node and merges
them with each node's capacity, allocatable resources, readiness, roles and
metrics-server usage.
"""

from dataclasses import dataclass

import structlog

from .. import fanout, kubeapi
from ..kubeapi import types as kube
from ..telemetry import BackendMetrics
from .quantity import (
    ResourceKey,
    bytes_value,
    millicores_value,
    parse_cpu_millicores,
    parse_memory_bytes,
    parse_pod_count,
    parse_resource,
)
from .types import NodeOverview, NodeResources, NodeState

logger = structlog.get_logger(__name__)

ROLE_LABEL_PREFIX = "node-role.kubernetes.io/"
DEFAULT_ROLE = "worker"

TERMINAL_POD_PHASES = frozenset({"Succeeded", "Failed"})


@dataclass
class NodeAllocation:
    """Requests and limits summed over the live pods of one node."""

    cpu_requests: int = 0
    memory_requests: int = 0
    cpu_limits: int = 0
    memory_limits: int = 0
    pod_count: int = 0


def node_roles(labels: dict[str, str]) -> list[str]:
    """Extract roles from ``node-role.kubernetes.io/<role>`` labels.

    Returns ["worker"] when the node carries no role label.
    """
    roles = [
        key[len(ROLE_LABEL_PREFIX) :]
        for key in labels
        if key.startswith(ROLE_LABEL_PREFIX) and len(key) > len(ROLE_LABEL_PREFIX)
    ]
    return roles or [DEFAULT_ROLE]


def node_status(conditions: list[kube.NodeCondition]) -> NodeState:
    """Derive node readiness from its Ready condition."""
    for condition in conditions:
        if condition.type == "Ready":
            if condition.status == "True":
                return NodeState.READY
            if condition.status == "False":
                return NodeState.NOT_READY
            return NodeState.UNKNOWN
    return NodeState.UNKNOWN


def sum_allocations(pods: list[kube.Pod]) -> dict[str, NodeAllocation]:
    """Sum container requests and limits per node over live pods.

    Pods without an assigned node or in a terminal phase (Succeeded,
    Failed) are skipped and not counted.
    """
    cpu = ResourceKey.CPU.value
    memory = ResourceKey.MEMORY.value

    allocations: dict[str, NodeAllocation] = {}
    for pod in pods:
        node = pod.spec.node_name
        if not node or pod.status.phase in TERMINAL_POD_PHASES:
            continue
        allocation = allocations.setdefault(node, NodeAllocation())
        allocation.pod_count += 1
        for container in pod.spec.containers:
            requests = container.resources.requests
            limits = container.resources.limits
            allocation.cpu_requests += parse_cpu_millicores(requests.get(cpu, ""))
            allocation.memory_requests += parse_memory_bytes(requests.get(memory, ""))
            allocation.cpu_limits += parse_cpu_millicores(limits.get(cpu, ""))
            allocation.memory_limits += parse_memory_bytes(limits.get(memory, ""))
    return allocations


def _node_resources(quantities: dict[str, str]) -> NodeResources:
    return NodeResources(
        cpu=parse_resource(quantities.get(ResourceKey.CPU.value, ""), is_cpu=True),
        memory=parse_resource(
            quantities.get(ResourceKey.MEMORY.value, ""), is_cpu=False
        ),
    )


def build_node_overview(
    node: kube.Node,
    allocation: NodeAllocation | None,
    node_metrics: kube.NodeMetrics | None,
) -> NodeOverview:
    """Assemble the overview of one node.

    Nodes without live pods keep empty requested/limited values and a zero
    pod count. ``usage`` stays None without a metrics-server sample.
    """
    overview = NodeOverview(
        name=node.metadata.name,
        status=node_status(node.status.conditions),
        roles=node_roles(node.metadata.labels),
        capacity=_node_resources(node.status.capacity),
        allocatable=_node_resources(node.status.allocatable),
        max_pods=parse_pod_count(node.status.capacity.get(ResourceKey.PODS.value, "")),
    )

    if allocation is not None:
        overview.pod_count = allocation.pod_count
        overview.requested = NodeResources(
            cpu=millicores_value(allocation.cpu_requests),
            memory=bytes_value(allocation.memory_requests),
        )
        overview.limited = NodeResources(
            cpu=millicores_value(allocation.cpu_limits),
            memory=bytes_value(allocation.memory_limits),
        )

    if node_metrics is not None:
        overview.usage = _node_resources(node_metrics.usage)

    return overview


def aggregate_nodes(
    client: kubeapi.KubeApiClient,
    *,
    metrics: BackendMetrics | None = None,
) -> list[NodeOverview]:
    """Build the cluster node overview.

    The node list and the all-namespaces pod list are required; node metrics
    are best-effort.

    Raises:
        fanout.RequiredFetchError: If nodes or pods cannot be listed.
    """
    fetched = fanout.fetch_all(
        required={
            "nodes": client.list_nodes,
            "all_pods": client.list_all_pods,
        },
        best_effort={"node_metrics": client.list_node_metrics},
        metrics=metrics,
    )
    nodes: list[kube.Node] = fetched["nodes"]
    node_metrics: dict[str, kube.NodeMetrics] = {
        nm.metadata.name: nm for nm in fetched["node_metrics"] or []
    }
    allocations = sum_allocations(fetched["all_pods"])

    overviews = [
        build_node_overview(
            node,
            allocations.get(node.metadata.name),
            node_metrics.get(node.metadata.name),
        )
        for node in nodes
    ]
    logger.info(
        "Aggregated nodes",
        nodes=len(overviews),
        metrics_available=fetched["node_metrics"] is not None,
    )
    return overviews
