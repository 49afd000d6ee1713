"""Raw API response types for the Kubernetes API.

Pydantic models representing the subset of Kubernetes, metrics-server and
kubelet summary objects the backend reads, with minimal processing. JSON keys
are camelCase on the wire; models accept both the wire names and the Python
field names. Unknown fields are ignored.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class KubeModel(BaseModel):
    """Base model mapping snake_case fields to camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Metadata


class OwnerReference(KubeModel):
    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""


class ObjectMeta(KubeModel):
    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    uid: str = ""
    owner_references: list[OwnerReference] = Field(default_factory=list)


class ObjectReference(KubeModel):
    name: str = ""
    namespace: str = ""


class Namespace(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)


# Pods


class ResourceRequirements(KubeModel):
    """Container requests and limits as raw quantity strings."""

    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)


class Container(KubeModel):
    name: str = ""
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class PVCVolumeSource(KubeModel):
    claim_name: str = ""


class EmptyDirVolumeSource(KubeModel):
    # "" = node disk, "Memory" = tmpfs
    medium: str = ""
    size_limit: str = ""


class Volume(KubeModel):
    name: str = ""
    persistent_volume_claim: PVCVolumeSource | None = None
    empty_dir: EmptyDirVolumeSource | None = None


class PodSpec(KubeModel):
    node_name: str = ""
    containers: list[Container] = Field(default_factory=list)
    volumes: list[Volume] = Field(default_factory=list)


class PodStatus(KubeModel):
    phase: str = ""


class Pod(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus = Field(default_factory=PodStatus)


# Workloads


class DeploymentSpec(KubeModel):
    replicas: int = 0


class DeploymentStatus(KubeModel):
    ready_replicas: int = 0
    available_replicas: int = 0


class Deployment(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: DeploymentSpec = Field(default_factory=DeploymentSpec)
    status: DeploymentStatus = Field(default_factory=DeploymentStatus)


class ReplicaSet(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)


class StatefulSetSpec(KubeModel):
    replicas: int = 0


class StatefulSetStatus(KubeModel):
    ready_replicas: int = 0
    available_replicas: int = 0
    current_replicas: int = 0


class StatefulSet(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: StatefulSetSpec = Field(default_factory=StatefulSetSpec)
    status: StatefulSetStatus = Field(default_factory=StatefulSetStatus)


class Job(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)


class CronJobStatus(KubeModel):
    active: list[ObjectReference] = Field(default_factory=list)


class CronJob(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    status: CronJobStatus = Field(default_factory=CronJobStatus)


# Persistent volume claims


class PVCSpec(KubeModel):
    storage_class_name: str = ""
    access_modes: list[str] = Field(default_factory=list)


class PVCStatus(KubeModel):
    capacity: dict[str, str] = Field(default_factory=dict)


class PersistentVolumeClaim(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PVCSpec = Field(default_factory=PVCSpec)
    status: PVCStatus = Field(default_factory=PVCStatus)


# Nodes


class NodeCondition(KubeModel):
    type: str = ""
    # "True" | "False" | "Unknown"
    status: str = ""


class NodeStatus(KubeModel):
    capacity: dict[str, str] = Field(default_factory=dict)
    allocatable: dict[str, str] = Field(default_factory=dict)
    conditions: list[NodeCondition] = Field(default_factory=list)


class Node(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    status: NodeStatus = Field(default_factory=NodeStatus)


# metrics.k8s.io


class ContainerUsage(KubeModel):
    name: str = ""
    usage: dict[str, str] = Field(default_factory=dict)


class PodMetrics(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    containers: list[ContainerUsage] = Field(default_factory=list)


class NodeMetrics(KubeModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    usage: dict[str, str] = Field(default_factory=dict)


# Kubelet stats/summary


class FsStats(KubeModel):
    used_bytes: int = 0


class ContainerStats(KubeModel):
    name: str = ""
    rootfs: FsStats | None = None
    logs: FsStats | None = None


class PVCRef(KubeModel):
    name: str = ""
    namespace: str = ""


class VolumeStats(KubeModel):
    name: str = ""
    pvc_ref: PVCRef | None = None
    capacity_bytes: int = 0
    used_bytes: int = 0
    available_bytes: int = 0


class PodRef(KubeModel):
    name: str = ""
    namespace: str = ""


class PodStats(KubeModel):
    pod_ref: PodRef = Field(default_factory=PodRef)
    containers: list[ContainerStats] = Field(default_factory=list)
    # The kubelet reports pod volumes under the singular "volume" key.
    volumes: list[VolumeStats] = Field(default_factory=list, alias="volume")


class NodeSummary(KubeModel):
    """Kubelet stats/summary for one node, covering pods of every namespace."""

    pods: list[PodStats] = Field(default_factory=list)
