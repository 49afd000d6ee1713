"""Pod ownership resolution.

Maps pods to the workload that ultimately owns them by following owner
references: Pod -> ReplicaSet -> Deployment, Pod -> StatefulSet and
Pod -> Job -> CronJob. Pods whose chain ends anywhere else belong to no
workload.
"""

from enum import Enum

from ..kubeapi import types as kube
from .types import WorkloadKey, WorkloadKind


class OwnerKind(str, Enum):
    """Pod owner kinds that can lead to a workload."""

    REPLICA_SET = "ReplicaSet"
    STATEFUL_SET = "StatefulSet"
    JOB = "Job"
    OTHER = "Other"

    @classmethod
    def of(cls, kind: str) -> "OwnerKind":
        try:
            return cls(kind)
        except ValueError:
            return cls.OTHER


def _owner_index(
    objects: list[kube.ReplicaSet] | list[kube.Job] | None,
    owner_kind: str,
) -> dict[str, str]:
    """Map each object's name to the name of its ``owner_kind`` owner."""
    index: dict[str, str] = {}
    for obj in objects or []:
        for ref in obj.metadata.owner_references:
            if ref.kind == owner_kind:
                index[obj.metadata.name] = ref.name
    return index


def resolve_owners(
    pods: list[kube.Pod],
    replica_sets: list[kube.ReplicaSet] | None,
    jobs: list[kube.Job] | None,
) -> dict[str, WorkloadKey]:
    """Resolve each pod to the workload that owns it.

    Args:
        pods: All pods of the namespace.
        replica_sets: Replica sets of the namespace, or None if unavailable.
            Without them no pod resolves to a Deployment.
        jobs: Jobs of the namespace, or None if unavailable. Without them no
            pod resolves to a CronJob.

    Returns:
        Mapping of pod name to WorkloadKey. Pods without a recognized owner
        chain are absent.
    """
    rs_to_deployment = _owner_index(replica_sets, WorkloadKind.DEPLOYMENT.value)
    job_to_cronjob = _owner_index(jobs, WorkloadKind.CRON_JOB.value)

    pod_to_workload: dict[str, WorkloadKey] = {}
    for pod in pods:
        for ref in pod.metadata.owner_references:
            key: WorkloadKey | None = None
            owner_kind = OwnerKind.of(ref.kind)
            if owner_kind is OwnerKind.REPLICA_SET:
                if ref.name in rs_to_deployment:
                    key = WorkloadKey(
                        WorkloadKind.DEPLOYMENT, rs_to_deployment[ref.name]
                    )
            elif owner_kind is OwnerKind.STATEFUL_SET:
                key = WorkloadKey(WorkloadKind.STATEFUL_SET, ref.name)
            elif owner_kind is OwnerKind.JOB:
                if ref.name in job_to_cronjob:
                    key = WorkloadKey(WorkloadKind.CRON_JOB, job_to_cronjob[ref.name])
            else:
                # DaemonSets, Nodes and other owners are not workloads here.
                continue

            if key is not None:
                pod_to_workload[pod.metadata.name] = key
    return pod_to_workload
