"""Tests for waiting on object readiness and termination."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from kube_apply.cluster import InMemoryCluster
from kube_apply.cluster.in_memory import POLL_READY
from kube_apply.config import WaitOptions
from kube_apply.exceptions import ResourceFailedError, WaitTimeoutError
from kube_apply.manifest import ObjectIdentity
from kube_apply.wait import (
    WaitState,
    deadline_after,
    wait_for_ready,
    wait_for_termination,
)

ObjectFactory = Callable[..., dict[str, Any]]


def _job(name: str) -> dict[str, Any]:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": name, "namespace": "apps"},
    }


def _complete(cluster: InMemoryCluster, identity: ObjectIdentity) -> None:
    cluster.set_status(identity, {"conditions": [{"type": "Complete", "status": "True"}]})


async def test_wait_nothing(cluster: InMemoryCluster) -> None:
    """Test waiting on no objects returns immediately."""
    summary = await wait_for_ready(cluster, [])
    assert summary.results == {}


async def test_wait_for_ready(
    cluster: InMemoryCluster, wait_options: WaitOptions, config_map: ObjectFactory
) -> None:
    """Test waiting until every object is ready."""
    ready = cluster.add_object(config_map("a"))
    job = cluster.add_object(_job("migrate"))

    async def _finish_job() -> None:
        await asyncio.sleep(0.05)
        _complete(cluster, job)

    finisher = asyncio.create_task(_finish_job())
    summary = await wait_for_ready(cluster, [ready, job], wait_options)
    await finisher

    assert summary.condition == "readiness"
    assert summary.ready == [ready, job]
    assert summary.pending == []
    assert summary.results[job].state == WaitState.READY
    polls = [identity for op, identity in cluster.calls if op == POLL_READY]
    assert polls.count(ready) == 1
    assert polls.count(job) > 1


async def test_wait_timeout_names_pending(
    cluster: InMemoryCluster, config_map: ObjectFactory
) -> None:
    """Test the timeout error names only the objects that were not ready."""
    ready = cluster.add_object(config_map("a"))
    pending = cluster.add_object(_job("migrate"))
    missing = ObjectIdentity.from_object(config_map("missing"))

    with pytest.raises(WaitTimeoutError) as exc_info:
        await wait_for_ready(
            cluster,
            [ready, pending, missing],
            WaitOptions(interval=0.01),
            deadline=deadline_after(0.1),
        )
    assert exc_info.value.pending == [pending, missing]
    assert str(exc_info.value) == (
        "timeout waiting for readiness: [Job/apps/migrate, ConfigMap/apps/missing]"
    )


async def test_wait_failed(
    cluster: InMemoryCluster, wait_options: WaitOptions, config_map: ObjectFactory
) -> None:
    """Test a failed object stops the wait."""
    job = cluster.add_object(_job("migrate"))
    cluster.set_status(
        job,
        {"conditions": [{"type": "Failed", "status": "True", "message": "BackoffLimitExceeded"}]},
    )
    pending = cluster.add_object(_job("other"))

    with pytest.raises(
        ResourceFailedError, match="Job/apps/migrate failed: BackoffLimitExceeded"
    ):
        await wait_for_ready(cluster, [pending, job], wait_options)


async def test_wait_concurrency(cluster: InMemoryCluster, config_map: ObjectFactory) -> None:
    """Test polls against the cluster are bounded by the concurrency option."""
    identities = [cluster.add_object(config_map(f"cm-{i}")) for i in range(10)]
    in_flight = 0
    max_in_flight = 0
    poll_ready = cluster.poll_ready

    async def _slow_poll(identity: ObjectIdentity) -> Any:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return await poll_ready(identity)

    cluster.poll_ready = _slow_poll  # type: ignore[method-assign]
    summary = await wait_for_ready(
        cluster, identities, WaitOptions(interval=0.01, concurrency=3)
    )
    assert len(summary.ready) == 10
    assert max_in_flight == 3


async def test_wait_for_termination(
    cluster: InMemoryCluster, wait_options: WaitOptions, config_map: ObjectFactory
) -> None:
    """Test waiting for objects held by finalizers to be removed."""
    obj = config_map("a")
    obj["metadata"]["finalizers"] = ["example.com/cleanup"]
    identity = cluster.add_object(obj)
    gone = ObjectIdentity.from_object(config_map("gone"))
    await cluster.delete(identity)

    async def _finalize() -> None:
        await asyncio.sleep(0.05)
        cluster.remove_finalizers(identity)

    finalizer = asyncio.create_task(_finalize())
    summary = await wait_for_termination(cluster, [identity, gone], wait_options)
    await finalizer

    assert summary.condition == "termination"
    assert summary.ready == [identity, gone]


async def test_wait_for_termination_timeout(
    cluster: InMemoryCluster, config_map: ObjectFactory
) -> None:
    """Test objects that are never finalized time out."""
    obj = config_map("a")
    obj["metadata"]["finalizers"] = ["example.com/cleanup"]
    identity = cluster.add_object(obj)
    await cluster.delete(identity)

    with pytest.raises(
        WaitTimeoutError, match=r"timeout waiting for termination: \[ConfigMap/apps/a\]"
    ):
        await wait_for_termination(
            cluster, [identity], WaitOptions(timeout=0.1, interval=0.01)
        )
