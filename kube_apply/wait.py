"""
Provides utilities for waiting on a set of objects to become ready or to be
deleted from the cluster.

Each monitored object moves from `Pending` to one of `Ready`, `Failed` or
`TimedOut`. Objects are polled concurrently, with the number of in-flight
API calls bounded by `WaitOptions.concurrency`. All objects share a single
deadline expressed in event loop time, which lets a caller hand the
remainder of a larger deadline to the waiter.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
import logging

from .cluster import ClusterClient
from .config import WaitOptions
from .exceptions import ResourceFailedError, WaitTimeoutError
from .manifest import ObjectIdentity
from .status import Status, StatusInfo

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "wait_for_ready",
    "wait_for_termination",
    "deadline_after",
    "WaitState",
    "WaitResult",
    "WaitSummary",
]

READINESS = "readiness"
TERMINATION = "termination"


class WaitState(Enum):
    """Represents the state of an object being waited on."""

    PENDING = "Pending"
    READY = "Ready"
    FAILED = "Failed"
    TIMEOUT = "TimedOut"


@dataclass
class WaitResult:
    """The state of a single monitored object."""

    identity: ObjectIdentity
    state: WaitState = WaitState.PENDING
    status_info: StatusInfo | None = None


@dataclass
class WaitSummary:
    """Summary of the state of all monitored objects."""

    condition: str
    results: dict[ObjectIdentity, WaitResult] = field(default_factory=dict)

    def _with_state(self, state: WaitState) -> list[ObjectIdentity]:
        return [
            identity
            for identity, result in self.results.items()
            if result.state == state
        ]

    @property
    def ready(self) -> list[ObjectIdentity]:
        return self._with_state(WaitState.READY)

    @property
    def pending(self) -> list[ObjectIdentity]:
        return self._with_state(WaitState.PENDING)

    @property
    def failed(self) -> list[ObjectIdentity]:
        return self._with_state(WaitState.FAILED)

    @property
    def timed_out(self) -> list[ObjectIdentity]:
        return self._with_state(WaitState.TIMEOUT)


def deadline_after(timeout: float) -> float:
    """Return the event loop time `timeout` seconds from now."""
    return asyncio.get_running_loop().time() + timeout


async def _wait_all(
    identities: Iterable[ObjectIdentity],
    poll: Callable[[ObjectIdentity], Awaitable[StatusInfo]],
    condition: str,
    options: WaitOptions,
    deadline: float | None,
) -> WaitSummary:
    """Poll every object until it is ready, one fails, or the deadline elapses."""
    summary = WaitSummary(condition=condition)
    for identity in identities:
        summary.results.setdefault(identity, WaitResult(identity))
    if not summary.results:
        return summary
    if deadline is None:
        deadline = deadline_after(options.timeout)

    sem = asyncio.Semaphore(options.concurrency)

    async def _watch(result: WaitResult) -> None:
        while True:
            async with sem:
                status_info = await poll(result.identity)
            result.status_info = status_info
            if status_info.status == Status.READY:
                result.state = WaitState.READY
                _LOGGER.debug("%s reached %s", result.identity, condition)
                return
            if status_info.status == Status.FAILED:
                result.state = WaitState.FAILED
                raise ResourceFailedError(str(result.identity), status_info.message)
            _LOGGER.debug("%s still pending: %s", result.identity, status_info)
            await asyncio.sleep(options.interval)

    tasks = [
        asyncio.create_task(_watch(result), name=f"wait {result.identity}")
        for result in summary.results.values()
    ]
    try:
        async with asyncio.timeout_at(deadline):
            await asyncio.gather(*tasks)
    except asyncio.TimeoutError as err:
        pending = summary.pending
        for identity in pending:
            summary.results[identity].state = WaitState.TIMEOUT
        _LOGGER.warning(
            "Timeout waiting for %s of %d object(s): %s",
            condition,
            len(pending),
            [str(identity) for identity in pending],
        )
        raise WaitTimeoutError(pending, condition) from err
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return summary


async def wait_for_ready(
    client: ClusterClient,
    identities: Iterable[ObjectIdentity],
    options: WaitOptions | None = None,
    deadline: float | None = None,
) -> WaitSummary:
    """Wait for all objects to become ready.

    Args:
        client: The cluster to poll.
        identities: The objects to monitor.
        options: Poll interval, concurrency and default timeout.
        deadline: Event loop time to give up at, `options.timeout` from now if unset.

    Raises:
        WaitTimeoutError: Naming the objects that were not ready at the deadline.
        ResourceFailedError: If any object reports a terminal failure.
    """
    return await _wait_all(
        identities, client.poll_ready, READINESS, options or WaitOptions(), deadline
    )


async def wait_for_termination(
    client: ClusterClient,
    identities: Iterable[ObjectIdentity],
    options: WaitOptions | None = None,
    deadline: float | None = None,
) -> WaitSummary:
    """Wait for all objects to be removed from the cluster.

    Objects with finalizers may remain for a while after being deleted,
    this waits for them to be gone.

    Raises:
        WaitTimeoutError: Naming the objects that still existed at the deadline.
    """

    async def _poll_absent(identity: ObjectIdentity) -> StatusInfo:
        if await client.poll_absent(identity):
            return StatusInfo(Status.READY)
        return StatusInfo(Status.PENDING, "waiting for deletion")

    return await _wait_all(
        identities, _poll_absent, TERMINATION, options or WaitOptions(), deadline
    )
