"""Tests for manifest library."""

from typing import Any

import pytest

from kube_apply.exceptions import InputException
from kube_apply.manifest import (
    Action,
    ChangeSet,
    Inventory,
    ObjectIdentity,
    Owner,
    sort_identities,
)

DEPLOYMENT = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "podinfo", "namespace": "apps"},
}


def _identity(kind: str, name: str, namespace: str | None = "apps", **kwargs: Any) -> ObjectIdentity:
    return ObjectIdentity(
        group=kwargs.get("group", ""),
        version=kwargs.get("version", "v1"),
        kind=kind,
        namespace=namespace,
        name=name,
    )


def test_identity_from_object() -> None:
    """Test parsing the identity of a raw object."""
    identity = ObjectIdentity.from_object(DEPLOYMENT)
    assert identity.group == "apps"
    assert identity.version == "v1"
    assert identity.kind == "Deployment"
    assert identity.namespace == "apps"
    assert identity.name == "podinfo"
    assert identity.api_version == "apps/v1"
    assert str(identity) == "Deployment/apps/podinfo"


def test_cluster_scoped_identity() -> None:
    """Test the identity of an object without a namespace."""
    identity = ObjectIdentity.from_object(
        {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "apps"}}
    )
    assert identity.group == ""
    assert identity.namespace is None
    assert identity.api_version == "v1"
    assert str(identity) == "Namespace/apps"


@pytest.mark.parametrize(
    "doc",
    [
        {"kind": "ConfigMap", "metadata": {"name": "a"}},
        {"apiVersion": "v1", "metadata": {"name": "a"}},
        {"apiVersion": "v1", "kind": "ConfigMap"},
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"namespace": "a"}},
    ],
)
def test_identity_invalid_object(doc: dict[str, Any]) -> None:
    """Test objects missing identity fields are rejected."""
    with pytest.raises(InputException, match="Invalid object"):
        ObjectIdentity.from_object(doc)


def test_identity_ignores_version() -> None:
    """Test the same object served at different versions is equal."""
    v1beta1 = _identity("HorizontalPodAutoscaler", "web", group="autoscaling", version="v1beta1")
    v2 = _identity("HorizontalPodAutoscaler", "web", group="autoscaling", version="v2")
    assert v1beta1 == v2
    assert len({v1beta1, v2}) == 1
    assert {v1beta1} - {v2} == set()


def test_sort_identities() -> None:
    """Test identities are sorted by kind, namespace and name."""
    identities = [
        _identity("Service", "b"),
        _identity("ConfigMap", "b"),
        _identity("ConfigMap", "a", namespace="other"),
        _identity("ConfigMap", "a"),
    ]
    assert [str(identity) for identity in sort_identities(identities)] == [
        "ConfigMap/apps/a",
        "ConfigMap/apps/b",
        "ConfigMap/other/a",
        "Service/apps/b",
    ]


def test_owner() -> None:
    """Test the labels and names derived from the owner."""
    owner = Owner(name="podinfo", namespace="apps")
    assert owner.labels == {
        "kube-apply.dev/name": "podinfo",
        "kube-apply.dev/namespace": "apps",
    }
    assert owner.annotations == {"kube-apply.dev/field-manager": "kube-apply"}
    assert owner.prune_annotation == "kube-apply.dev/prune"
    assert owner.inventory_name == "kube-apply.podinfo"

    assert not owner.owns(DEPLOYMENT)
    assert owner.owns({"metadata": {"labels": {**owner.labels, "app": "podinfo"}}})
    other = Owner(name="podinfo", namespace="other")
    assert not other.owns({"metadata": {"labels": owner.labels}})


def test_change_set() -> None:
    """Test recording actions in a change set."""
    change_set = ChangeSet()
    assert not change_set.has_changes
    change_set.add(_identity("ConfigMap", "a"), Action.UNCHANGED)
    assert not change_set.has_changes
    other = ChangeSet()
    other.add(_identity("ConfigMap", "b"), Action.CREATE)
    change_set.extend(other)
    assert change_set.has_changes
    assert len(change_set) == 2
    assert change_set.to_list() == [
        "ConfigMap/apps/a unchanged",
        "ConfigMap/apps/b created",
    ]
    assert [str(entry.identity) for entry in change_set.entries_for(Action.CREATE)] == [
        "ConfigMap/apps/b"
    ]


def test_inventory_entries_sorted_and_unique() -> None:
    """Test inventory entries stay ordered and free of duplicates."""
    inventory = Inventory.from_objects(
        "podinfo",
        "apps",
        [
            DEPLOYMENT,
            {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "a", "namespace": "apps"}},
        ],
        source="oci://ghcr.io/org/podinfo",
        version="1.0.0",
    )
    inventory.add_objects([DEPLOYMENT])
    assert [str(identity) for identity in inventory.identities] == [
        "ConfigMap/apps/a",
        "Deployment/apps/podinfo",
    ]


def test_inventory_config_map() -> None:
    """Test persisting and parsing the inventory ConfigMap."""
    owner = Owner(name="podinfo", namespace="apps")
    inventory = Inventory.from_objects(
        "podinfo",
        "apps",
        [
            DEPLOYMENT,
            {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "apps"}},
        ],
        source="./module",
        version="1.0.0",
    )
    doc = inventory.to_config_map(owner)
    assert doc["kind"] == "ConfigMap"
    assert doc["metadata"]["name"] == "kube-apply.podinfo"
    assert doc["metadata"]["namespace"] == "apps"
    assert doc["metadata"]["labels"]["kube-apply.dev/name"] == "podinfo"
    assert doc["data"]["source"] == "./module"
    assert doc["data"]["version"] == "1.0.0"

    parsed = Inventory.from_config_map(owner, doc)
    assert parsed == inventory
    namespace = parsed.identities[1]
    assert namespace.kind == "Namespace"
    assert namespace.namespace is None
    assert namespace.version == "v1"


def test_inventory_config_map_missing_entries() -> None:
    """Test a ConfigMap without entries is not a valid inventory."""
    owner = Owner(name="podinfo", namespace="apps")
    with pytest.raises(InputException, match="missing data.entries"):
        Inventory.from_config_map(owner, {"data": {"source": "x"}})
