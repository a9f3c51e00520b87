"""Tests for the prune library."""

from collections.abc import Callable
from typing import Any

import pytest

from kube_apply.cluster import InMemoryCluster
from kube_apply.cluster.in_memory import DELETE
from kube_apply.config import PropagationPolicy, PruneOptions
from kube_apply.exceptions import PruneError
from kube_apply.labels import set_owner_labels
from kube_apply.manifest import ObjectIdentity, Owner
from kube_apply.prune import prune

ObjectFactory = Callable[..., dict[str, Any]]


async def test_prune(
    cluster: InMemoryCluster, owner: Owner, config_map: ObjectFactory
) -> None:
    """Test owned objects are deleted and missing objects count as deleted."""
    stale = [
        cluster.add_object(obj)
        for obj in set_owner_labels([config_map("a"), config_map("b")], owner)
    ]
    stale.append(ObjectIdentity.from_object(config_map("gone")))

    change_set = await prune(cluster, stale, owner)
    assert change_set.to_list() == [
        "ConfigMap/apps/a deleted",
        "ConfigMap/apps/b deleted",
        "ConfigMap/apps/gone deleted",
    ]
    assert cluster.list_objects() == []
    assert [str(identity) for op, identity in cluster.calls if op == DELETE] == [
        "ConfigMap/apps/a",
        "ConfigMap/apps/b",
    ]


async def test_prune_skips_adopted(
    cluster: InMemoryCluster, owner: Owner, config_map: ObjectFactory
) -> None:
    """Test an object relabeled by another owner is not deleted."""
    other = Owner(name="other", namespace="apps")
    identity = cluster.add_object(set_owner_labels([config_map("a")], other)[0])

    change_set = await prune(cluster, [identity], owner)
    assert change_set.to_list() == ["ConfigMap/apps/a skipped"]
    assert cluster.list_objects() == [identity]


async def test_prune_disabled(
    cluster: InMemoryCluster, owner: Owner, config_map: ObjectFactory
) -> None:
    """Test an object annotated to disable pruning is not deleted."""
    obj = set_owner_labels([config_map("a")], owner)[0]
    obj["metadata"]["annotations"]["kube-apply.dev/prune"] = "disabled"
    identity = cluster.add_object(obj)

    change_set = await prune(cluster, [identity], owner)
    assert change_set.to_list() == ["ConfigMap/apps/a skipped"]
    assert cluster.list_objects() == [identity]


async def test_prune_orphans_dependents(
    cluster: InMemoryCluster, owner: Owner, config_map: ObjectFactory
) -> None:
    """Test the propagation policy is passed to the delete."""
    parent = cluster.add_object(set_owner_labels([config_map("parent")], owner)[0])
    child = config_map("child")
    child["metadata"]["ownerReferences"] = [
        {"uid": cluster.get_object(parent)["metadata"]["uid"]}  # type: ignore[index]
    ]
    child_identity = cluster.add_object(child)

    await prune(
        cluster, [parent], owner, PruneOptions(propagation_policy=PropagationPolicy.ORPHAN)
    )
    assert cluster.list_objects() == [child_identity]


async def test_prune_fail_fast(
    cluster: InMemoryCluster, owner: Owner, config_map: ObjectFactory
) -> None:
    """Test the first failed delete stops the prune with the partial change set."""
    stale = [
        cluster.add_object(obj)
        for obj in set_owner_labels(
            [config_map("a"), config_map("b"), config_map("c")], owner
        )
    ]
    cluster.inject_error(DELETE, stale[1])

    with pytest.raises(PruneError, match="ConfigMap/apps/b delete failed") as exc_info:
        await prune(cluster, stale, owner)
    assert exc_info.value.change_set.to_list() == ["ConfigMap/apps/a deleted"]
    assert cluster.list_objects() == stale[1:]

