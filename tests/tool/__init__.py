"""Test helpers for kube-apply tools."""

import pytest

from kube_apply.cluster import ClusterClient, InMemoryCluster
from kube_apply.tool import common


def use_cluster(monkeypatch: pytest.MonkeyPatch, cluster: InMemoryCluster) -> None:
    """Make the command line tool talk to the in memory cluster."""

    def _create_client(*args: str | None) -> ClusterClient:
        return cluster

    monkeypatch.setattr(common, "create_client", _create_client)
