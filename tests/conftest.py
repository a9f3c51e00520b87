"""Fixtures shared by the kube-apply tests."""

from collections.abc import Callable
from typing import Any

import pytest

from kube_apply.cluster import InMemoryCluster
from kube_apply.config import WaitOptions
from kube_apply.manifest import Owner

NAMESPACE = "apps"

ObjectFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def cluster() -> InMemoryCluster:
    """Return an empty in memory cluster."""
    return InMemoryCluster()


@pytest.fixture
def owner() -> Owner:
    """Return the owner of the objects under test."""
    return Owner(name="podinfo", namespace=NAMESPACE)


@pytest.fixture
def wait_options() -> WaitOptions:
    """Wait options that poll fast enough for tests."""
    return WaitOptions(timeout=5.0, interval=0.01, concurrency=4)


@pytest.fixture
def config_map() -> ObjectFactory:
    """Return a factory for ConfigMap objects."""

    def _config_map(
        name: str, namespace: str = NAMESPACE, **data: str
    ) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": data or {"key": "value"},
        }

    return _config_map
