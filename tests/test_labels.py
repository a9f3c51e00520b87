"""Tests for labels library."""

from collections.abc import Callable
import copy
from typing import Any

import pytest

from kube_apply.exceptions import InputException
from kube_apply.labels import set_owner_labels, validate_objects
from kube_apply.manifest import Owner

ObjectFactory = Callable[..., dict[str, Any]]


def test_set_owner_labels(owner: Owner, config_map: ObjectFactory) -> None:
    """Test the owner labels are merged into existing metadata."""
    obj = config_map("a")
    obj["metadata"]["labels"] = {"app": "podinfo"}
    obj["metadata"]["annotations"] = {"note": "keep"}
    set_owner_labels([obj], owner)
    assert obj["metadata"]["labels"] == {
        "app": "podinfo",
        "kube-apply.dev/name": "podinfo",
        "kube-apply.dev/namespace": "apps",
    }
    assert obj["metadata"]["annotations"] == {
        "note": "keep",
        "kube-apply.dev/field-manager": "kube-apply",
    }
    assert obj["data"] == {"key": "value"}


def test_set_owner_labels_idempotent(owner: Owner, config_map: ObjectFactory) -> None:
    """Test labeling twice gives the same objects as labeling once."""
    once = set_owner_labels([config_map("a"), config_map("b")], owner)
    twice = set_owner_labels(copy.deepcopy(once), owner)
    assert twice == once


def test_set_owner_labels_null_metadata(owner: Owner) -> None:
    """Test labels and annotations explicitly set to null are replaced."""
    obj: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "a", "labels": None, "annotations": None},
    }
    set_owner_labels([obj], owner)
    assert obj["metadata"]["labels"] == owner.labels
    assert obj["metadata"]["annotations"] == owner.annotations


def test_validate_objects(config_map: ObjectFactory) -> None:
    """Test the identities of valid objects are returned in order."""
    identities = validate_objects([config_map("b"), config_map("a")])
    assert [str(identity) for identity in identities] == [
        "ConfigMap/apps/b",
        "ConfigMap/apps/a",
    ]


def test_validate_objects_duplicate(config_map: ObjectFactory) -> None:
    """Test two objects with the same identity are rejected."""
    with pytest.raises(InputException, match="Duplicate object ConfigMap/apps/a"):
        validate_objects([config_map("a"), config_map("b"), config_map("a")])


def test_validate_objects_not_a_mapping(config_map: ObjectFactory) -> None:
    """Test a document that is not a mapping is rejected."""
    with pytest.raises(InputException, match="index 1, expected a mapping"):
        validate_objects([config_map("a"), ["not", "an", "object"]])
