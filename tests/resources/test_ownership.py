"""Tests for pod ownership resolution."""

from kubeadjust.kubeapi import types as kube
from kubeadjust.resources.ownership import OwnerKind, resolve_owners
from kubeadjust.resources.types import WorkloadKey, WorkloadKind


def _meta(name: str, *owners: tuple[str, str]) -> kube.ObjectMeta:
    return kube.ObjectMeta(
        name=name,
        owner_references=[
            kube.OwnerReference(kind=kind, name=owner) for kind, owner in owners
        ],
    )


def _pod(name: str, *owners: tuple[str, str]) -> kube.Pod:
    return kube.Pod(metadata=_meta(name, *owners))


PODS = [
    _pod("web-7d9f-abc", ("ReplicaSet", "web-7d9f")),
    _pod("db-0", ("StatefulSet", "db")),
    _pod("backup-28000-xyz", ("Job", "backup-28000")),
    _pod("agent-q2w", ("DaemonSet", "agent")),
    _pod("orphan"),
    _pod("manual-rs-1", ("ReplicaSet", "manual-rs")),
    _pod("oneoff-job-1", ("Job", "oneoff")),
]

REPLICA_SETS = [
    kube.ReplicaSet(metadata=_meta("web-7d9f", ("Deployment", "web"))),
    kube.ReplicaSet(metadata=_meta("manual-rs")),
]

JOBS = [
    kube.Job(metadata=_meta("backup-28000", ("CronJob", "backup"))),
    kube.Job(metadata=_meta("oneoff")),
]


# ---------------------------------------------------------------------------
# OwnerKind
# ---------------------------------------------------------------------------


def test_owner_kind_of_unknown_is_other():
    """Kinds outside the workload chain map to OTHER."""
    assert OwnerKind.of("ReplicaSet") is OwnerKind.REPLICA_SET
    assert OwnerKind.of("DaemonSet") is OwnerKind.OTHER
    assert OwnerKind.of("") is OwnerKind.OTHER


# ---------------------------------------------------------------------------
# resolve_owners
# ---------------------------------------------------------------------------


def test_resolve_owners_follows_owner_chains():
    """Pods resolve through ReplicaSet, StatefulSet and Job owners."""
    expected_owners = {
        "web-7d9f-abc": WorkloadKey(WorkloadKind.DEPLOYMENT, "web"),
        "db-0": WorkloadKey(WorkloadKind.STATEFUL_SET, "db"),
        "backup-28000-xyz": WorkloadKey(WorkloadKind.CRON_JOB, "backup"),
    }

    actual_owners = resolve_owners(PODS, REPLICA_SETS, JOBS)

    assert actual_owners == expected_owners


def test_resolve_owners_leaves_broken_chains_unresolved():
    """Standalone replica sets and jobs, DaemonSets and orphans are absent."""
    actual_owners = resolve_owners(PODS, REPLICA_SETS, JOBS)

    for name in ("agent-q2w", "orphan", "manual-rs-1", "oneoff-job-1"):
        assert name not in actual_owners


def test_resolve_owners_without_replica_sets():
    """Missing replica sets only drop Deployment ownership."""
    actual_owners = resolve_owners(PODS, None, JOBS)

    assert "web-7d9f-abc" not in actual_owners
    assert actual_owners["db-0"] == WorkloadKey(WorkloadKind.STATEFUL_SET, "db")
    assert actual_owners["backup-28000-xyz"] == WorkloadKey(
        WorkloadKind.CRON_JOB, "backup"
    )


def test_resolve_owners_without_jobs():
    """Missing jobs only drop CronJob ownership."""
    actual_owners = resolve_owners(PODS, REPLICA_SETS, None)

    assert "backup-28000-xyz" not in actual_owners
    assert actual_owners["web-7d9f-abc"] == WorkloadKey(WorkloadKind.DEPLOYMENT, "web")


def test_resolve_owners_is_idempotent():
    """Resolving the same input twice yields the same mapping."""
    assert resolve_owners(PODS, REPLICA_SETS, JOBS) == resolve_owners(
        PODS, REPLICA_SETS, JOBS
    )


def test_resolve_owners_parses_wire_objects():
    """Owner references validated from camelCase JSON resolve the same way."""
    pod = kube.Pod.model_validate(
        {
            "metadata": {
                "name": "api-5c-1",
                "ownerReferences": [
                    {"apiVersion": "apps/v1", "kind": "ReplicaSet", "name": "api-5c"}
                ],
            }
        }
    )
    rs = kube.ReplicaSet.model_validate(
        {
            "metadata": {
                "name": "api-5c",
                "ownerReferences": [{"kind": "Deployment", "name": "api"}],
            }
        }
    )

    actual_owners = resolve_owners([pod], [rs], [])

    assert actual_owners == {"api-5c-1": WorkloadKey(WorkloadKind.DEPLOYMENT, "api")}
