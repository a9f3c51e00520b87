"""Library for applying a set of objects to the cluster in stages.

Objects are applied in three stages so that the definitions other objects
depend on exist first:

1. Cluster definitions: CustomResourceDefinitions and Namespaces.
2. Class definitions: StorageClass, IngressClass, PriorityClass, etc.
3. Everything else.

Within a stage objects are ordered by kind, then by identity. The first
failure stops the apply and no rollback is attempted.
"""

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

from . import resource_diff, wait
from .cluster import ClusterClient
from .config import ApplyOptions
from .exceptions import ApplyError, ClusterException
from .manifest import (
    Action,
    ChangeSet,
    ChangeSetEntry,
    CRD_KIND,
    NAMESPACE_KIND,
    ObjectIdentity,
    Owner,
)

__all__ = [
    "apply_all_staged",
    "apply_object",
    "staged",
]

_LOGGER = logging.getLogger(__name__)

DEFINITIONS_STAGE = 0
CLASSES_STAGE = 1
RESOURCES_STAGE = 2

# Order that kinds are applied in within a stage, kinds not listed are applied
# after all listed kinds.
KIND_ORDER = [
    NAMESPACE_KIND,
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "ServiceAccount",
    "Secret",
    "ConfigMap",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    CRD_KIND,
    "ClusterRole",
    "ClusterRoleBinding",
    "Role",
    "RoleBinding",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "IngressClass",
    "Ingress",
    "APIService",
]
_KIND_RANK = {kind: rank for rank, kind in enumerate(KIND_ORDER)}


def stage_of(obj: dict[str, Any]) -> int:
    """Return the stage an object is applied in."""
    kind = obj.get("kind", "")
    if kind in (CRD_KIND, NAMESPACE_KIND):
        return DEFINITIONS_STAGE
    if kind.endswith("Class"):
        return CLASSES_STAGE
    return RESOURCES_STAGE


def _apply_key(obj: dict[str, Any]) -> tuple[int, tuple[str, str, str, str]]:
    identity = ObjectIdentity.from_object(obj)
    return (_KIND_RANK.get(identity.kind, len(KIND_ORDER)), identity.sort_key)


def staged(objects: Iterable[dict[str, Any]]) -> list[list[dict[str, Any]]]:
    """Split the objects into stages, each in apply order."""
    stages: list[list[dict[str, Any]]] = [[], [], []]
    for obj in objects:
        stages[stage_of(obj)].append(obj)
    return [sorted(stage, key=_apply_key) for stage in stages]


async def apply_object(
    client: ClusterClient, obj: dict[str, Any], owner: Owner
) -> ChangeSetEntry:
    """Apply a single object, skipping the write when nothing would change."""
    result = await resource_diff.diff_object(client, obj, owner)
    if result.action != Action.UNCHANGED:
        await client.apply(obj, owner)
    return result.entry


async def apply_all_staged(
    client: ClusterClient,
    objects: Iterable[dict[str, Any]],
    owner: Owner,
    options: ApplyOptions | None = None,
    deadline: float | None = None,
    change_set: ChangeSet | None = None,
) -> ChangeSet:
    """Apply all objects in stages, returning the action taken for each.

    Entries are recorded into `change_set` as objects are applied, so a caller
    passing its own change set keeps them whatever error ends the apply.

    Raises:
        ApplyError: For the first object that fails, carrying the entries
            recorded before the failure.
        WaitTimeoutError: If the definitions are not ready by the deadline.
        TimeoutError: If an apply call is still running at the deadline.
    """
    options = options or ApplyOptions()
    if change_set is None:
        change_set = ChangeSet()
    for index, stage in enumerate(staged(objects)):
        if not stage:
            continue
        _LOGGER.debug("Applying stage %d with %d object(s)", index, len(stage))
        for obj in stage:
            identity = ObjectIdentity.from_object(obj)
            try:
                async with asyncio.timeout_at(deadline):
                    entry = await apply_object(client, obj, owner)
            except ClusterException as err:
                _LOGGER.error("Failed to apply %s: %s", identity, err)
                raise ApplyError(identity, change_set, str(err)) from err
            change_set.entries.append(entry)
            _LOGGER.info("%s", entry)
        if index == DEFINITIONS_STAGE and options.wait_for_definitions:
            await wait.wait_for_ready(
                client,
                [ObjectIdentity.from_object(obj) for obj in stage],
                options.wait,
                deadline,
            )
    return change_set
