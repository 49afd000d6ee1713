"""Response types for the aggregated resource views.

Pydantic models rendered to the dashboard as camelCase JSON, plus the small
internal value types used while joining upstream data. Optional fields are
``None`` when their source had no data, which is distinct from a zero value.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..kubeapi import types as kube


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkloadKind(str, Enum):
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    CRON_JOB = "CronJob"


class NodeState(str, Enum):
    READY = "Ready"
    NOT_READY = "NotReady"
    UNKNOWN = "Unknown"


class ResourceValue(ResponseModel):
    """A parsed quantity with its original text.

    Only one numeric unit is populated: millicores for CPU, bytes for memory
    and storage. An empty ``raw`` means the value was never set.
    """

    raw: str = ""
    bytes: int = 0
    millicores: int = 0


class ResourcePair(ResponseModel):
    cpu: ResourceValue = Field(default_factory=ResourceValue)
    memory: ResourceValue = Field(default_factory=ResourceValue)


class EphemeralStorageInfo(ResponseModel):
    """Ephemeral storage of one container from three independent sources.

    ``request``/``limit`` are None when the pod spec does not set them;
    ``usage`` is None when kubelet data is unavailable for the container.
    """

    request: ResourceValue | None = None
    limit: ResourceValue | None = None
    usage: ResourceValue | None = None


class PvcVolume(ResponseModel):
    name: str
    type: Literal["pvc"] = "pvc"
    pvc_name: str = ""
    storage_class: str | None = None
    access_modes: list[str] | None = None
    capacity: ResourceValue | None = None
    usage: ResourceValue | None = None
    available: ResourceValue | None = None


class EmptyDirVolume(ResponseModel):
    name: str
    type: Literal["emptyDir"] = "emptyDir"
    # "" = node disk, "Memory" = tmpfs
    medium: str = ""
    size_limit: ResourceValue | None = None
    usage: ResourceValue | None = None
    capacity: ResourceValue | None = None


VolumeDetail = Annotated[PvcVolume | EmptyDirVolume, Field(discriminator="type")]


class ContainerResources(ResponseModel):
    name: str
    requests: ResourcePair = Field(default_factory=ResourcePair)
    limits: ResourcePair = Field(default_factory=ResourcePair)
    # None when metrics-server has no sample for this container.
    usage: ResourcePair | None = None
    ephemeral_storage: EphemeralStorageInfo = Field(
        default_factory=EphemeralStorageInfo
    )


class PodDetail(ResponseModel):
    name: str
    phase: str = ""
    containers: list[ContainerResources] = Field(default_factory=list)
    volumes: list[VolumeDetail] = Field(default_factory=list)


class DeploymentDetail(ResponseModel):
    """One workload (Deployment, StatefulSet or CronJob) and its pods."""

    kind: WorkloadKind
    name: str
    namespace: str
    replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    pods: list[PodDetail] = Field(default_factory=list)


class WorkloadResponse(ResponseModel):
    workloads: list[DeploymentDetail] = Field(default_factory=list)
    metrics_available: bool = False
    prometheus_available: bool = False


class NodeResources(ResponseModel):
    cpu: ResourceValue = Field(default_factory=ResourceValue)
    memory: ResourceValue = Field(default_factory=ResourceValue)


class NodeOverview(ResponseModel):
    """Capacity, allocation and live usage of one node.

    ``requested``/``limited`` are summed over the live pods scheduled to the
    node. ``usage`` is None when metrics-server has no data for the node.
    """

    name: str
    status: NodeState = NodeState.UNKNOWN
    roles: list[str] = Field(default_factory=list)
    capacity: NodeResources = Field(default_factory=NodeResources)
    allocatable: NodeResources = Field(default_factory=NodeResources)
    requested: NodeResources = Field(default_factory=NodeResources)
    limited: NodeResources = Field(default_factory=NodeResources)
    usage: NodeResources | None = None
    pod_count: int = 0
    max_pods: int = 0


class NamespaceItem(ResponseModel):
    name: str


@dataclass(frozen=True)
class WorkloadKey:
    """Identity under which pods are grouped."""

    kind: WorkloadKind
    name: str


@dataclass
class PodStorageStats:
    """Kubelet storage stats for one pod.

    ``container_ephemeral`` maps container name to rootfs + logs bytes;
    ``volumes`` maps volume name to its kubelet stats.
    """

    container_ephemeral: dict[str, int] = field(default_factory=dict)
    volumes: dict[str, kube.VolumeStats] = field(default_factory=dict)
