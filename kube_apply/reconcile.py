"""Driver that converges the cluster to the desired objects of an instance.

A reconcile run is a fixed sequence of steps:

- `label`: validate the desired objects and stamp the owner labels.
- `diff`: dry run only, report what would change and stop.
- `apply`: apply the objects in stages.
- `compute_stale`: compare the stored inventory with the new one.
- `persist_inventory` and `prune`: store the new inventory and delete stale
  objects, in the order chosen by the `InventoryPolicy`.
- `wait_ready`: wait for the applied objects to become ready.
- `wait_terminated`: wait for the pruned objects to be gone.

The run stops at the first failing step and raises a `ReconcileError` that
carries everything gathered so far. All steps share one deadline.
"""

import asyncio
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from . import apply, prune, resource_diff, wait
from .cluster import ClusterClient
from .config import InventoryPolicy, ReconcileConfig
from .context import trace_context
from .exceptions import (
    DeadlineExceededError,
    ReconcileError,
    ReconcileException,
)
from .inventory import InventoryStorage
from .labels import set_owner_labels, validate_objects
from .manifest import Action, ChangeSet, Inventory, ObjectIdentity

__all__ = [
    "Step",
    "ReconcileResult",
    "Reconciler",
]

_LOGGER = logging.getLogger(__name__)


class Step(StrEnum):
    """A named step of a reconcile run."""

    LABEL = "label"
    DIFF = "diff"
    APPLY = "apply"
    COMPUTE_STALE = "compute_stale"
    PERSIST_INVENTORY = "persist_inventory"
    PRUNE = "prune"
    WAIT_READY = "wait_ready"
    WAIT_TERMINATED = "wait_terminated"


@dataclass
class ReconcileResult:
    """The outcome of a reconcile run, possibly partial."""

    objects: list[dict[str, Any]] = field(default_factory=list)
    """The labeled desired objects."""

    diff: list[resource_diff.DiffResult] = field(default_factory=list)
    """Dry run results, only populated for a dry run."""

    applied: ChangeSet = field(default_factory=ChangeSet)
    stale: list[ObjectIdentity] = field(default_factory=list)
    inventory: Inventory | None = None
    """The inventory describing the desired objects."""

    pruned: ChangeSet = field(default_factory=ChangeSet)
    ready: wait.WaitSummary | None = None
    terminated: wait.WaitSummary | None = None

    completed: list[Step] = field(default_factory=list)
    """Steps that finished successfully, in order."""

    timings: dict[str, float] = field(default_factory=dict)
    """Seconds spent in each step."""

    @property
    def change_set(self) -> ChangeSet:
        """All actions taken by the run, or that would be taken for a dry run."""
        if self.diff:
            return resource_diff.change_set(self.diff)
        change_set = ChangeSet()
        change_set.extend(self.applied)
        change_set.extend(self.pruned)
        return change_set


class Reconciler:
    """Runs the reconcile steps for a single instance."""

    def __init__(self, client: ClusterClient, config: ReconcileConfig) -> None:
        """Initialize Reconciler."""
        self._client = client
        self._config = config
        self._owner = config.owner
        self._storage = InventoryStorage(client, self._owner)

    @asynccontextmanager
    async def _step(
        self,
        step: Step,
        result: ReconcileResult,
        deadline: float,
        bounded: bool = True,
    ) -> AsyncGenerator[None, None]:
        """Run a step under the deadline, converting failures to ReconcileError."""
        with trace_context(step, result.timings):
            try:
                if bounded:
                    async with asyncio.timeout_at(deadline):
                        yield
                else:
                    yield
            except TimeoutError as err:
                cause = DeadlineExceededError(
                    f"{step} did not complete within {self._config.timeout}s"
                )
                raise ReconcileError(step, result, cause) from err
            except ReconcileException as err:
                _LOGGER.error("Step %s failed: %s", step, err)
                raise ReconcileError(step, result, err) from err
            else:
                result.completed.append(step)

    async def _persist(self, result: ReconcileResult, deadline: float) -> None:
        async with self._step(Step.PERSIST_INVENTORY, result, deadline):
            assert result.inventory is not None
            await self._storage.persist(result.inventory)

    async def _prune(self, result: ReconcileResult, deadline: float) -> None:
        async with self._step(Step.PRUNE, result, deadline):
            await prune.prune(
                self._client,
                result.stale,
                self._owner,
                self._config.prune,
                result.pruned,
            )

    async def run(self, objects: Iterable[dict[str, Any]]) -> ReconcileResult:
        """Reconcile the desired objects, returning the result of the run.

        The desired objects are copied before labeling and are not modified.

        Raises:
            ReconcileError: For the first step that fails.
        """
        config = self._config
        deadline = wait.deadline_after(config.timeout)
        result = ReconcileResult()

        async with self._step(Step.LABEL, result, deadline):
            desired = copy.deepcopy(list(objects))
            validate_objects(desired)
            result.objects = set_owner_labels(desired, self._owner)
            result.inventory = Inventory.from_objects(
                config.name,
                config.namespace,
                result.objects,
                source=config.source,
                version=config.version,
            )

        if config.dry_run:
            async with self._step(Step.DIFF, result, deadline):
                result.diff = await resource_diff.diff_objects(
                    self._client, result.objects, self._owner
                )
            return result

        async with self._step(Step.APPLY, result, deadline, bounded=False):
            await apply.apply_all_staged(
                self._client,
                result.objects,
                self._owner,
                config.apply,
                deadline,
                result.applied,
            )

        async with self._step(Step.COMPUTE_STALE, result, deadline):
            result.stale = await self._storage.compute_stale(result.inventory)

        if config.inventory_policy == InventoryPolicy.PRUNE_THEN_PERSIST:
            await self._prune(result, deadline)
            await self._persist(result, deadline)
        else:
            await self._persist(result, deadline)
            await self._prune(result, deadline)

        if not config.wait:
            return result

        async with self._step(Step.WAIT_READY, result, deadline, bounded=False):
            _LOGGER.info(
                "Waiting for %d object(s) to become ready", len(result.objects)
            )
            result.ready = await wait.wait_for_ready(
                self._client,
                result.inventory.identities,
                config.wait_options,
                deadline,
            )

        deleted = [entry.identity for entry in result.pruned.entries_for(Action.DELETE)]
        async with self._step(Step.WAIT_TERMINATED, result, deadline, bounded=False):
            if deleted:
                _LOGGER.info("Waiting for %d object(s) to be finalized", len(deleted))
            result.terminated = await wait.wait_for_termination(
                self._client, deleted, config.wait_options, deadline
            )
        return result
