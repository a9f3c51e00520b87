"""Module for computing the changes a server-side apply would make.

Each desired object is submitted as a server-side apply dry run and the
object the server would store is compared with the live object. The result
is reported as one summary line per object, optionally followed by a unified
diff of the canonical YAML of both versions:

```python
from kube_apply import resource_diff

results = await resource_diff.diff_objects(client, objects, owner)
for line in resource_diff.diff_report(results, DiffOptions(show_diff=True)):
    print(line)
```
"""

from collections.abc import Iterable, Generator
import copy
from dataclasses import dataclass
import difflib
import logging
from typing import Any

import yaml

from .cluster import ClusterClient
from .config import DiffOptions
from .exceptions import ClusterException
from .manifest import (
    Action,
    ChangeSet,
    ChangeSetEntry,
    ObjectIdentity,
    Owner,
    SECRET_KIND,
    sort_objects,
)

__all__ = [
    "DiffResult",
    "diff_object",
    "diff_objects",
    "diff_report",
]

_LOGGER = logging.getLogger(__name__)

_TRUNCATE = "[Diff truncated by kube-apply]"

# Server populated fields that change on every write and are not part of the
# desired state
STRIP_METADATA = [
    "managedFields",
    "resourceVersion",
    "generation",
    "uid",
    "creationTimestamp",
    "selfLink",
]
STRIP_ANNOTATIONS = [
    "kubectl.kubernetes.io/last-applied-configuration",
    "deployment.kubernetes.io/revision",
]
SECRET_KEYS = ["data", "stringData"]
MASK = "***"


@dataclass
class DiffResult:
    """The outcome of a server-side apply dry run for one object."""

    entry: ChangeSetEntry
    live: dict[str, Any] | None
    merged: dict[str, Any]

    @property
    def identity(self) -> ObjectIdentity:
        return self.entry.identity

    @property
    def action(self) -> Action:
        return self.entry.action


def normalize(obj: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the object without status and server populated metadata."""
    result = copy.deepcopy(obj)
    result.pop("status", None)
    metadata = result.get("metadata") or {}
    for key in STRIP_METADATA:
        metadata.pop(key, None)
    if annotations := metadata.get("annotations"):
        for key in STRIP_ANNOTATIONS:
            annotations.pop(key, None)
        if not annotations:
            del metadata["annotations"]
    return result


def has_drifted(live: dict[str, Any], merged: dict[str, Any]) -> bool:
    """Return True if applying would change the live object."""
    return normalize(live) != normalize(merged)


async def diff_object(
    client: ClusterClient, obj: dict[str, Any], owner: Owner
) -> DiffResult:
    """Classify the change a server-side apply of the object would make."""
    identity = ObjectIdentity.from_object(obj)
    live, merged = await client.dry_run_apply(obj, owner)
    if live is None:
        action = Action.CREATE
    elif has_drifted(live, merged):
        action = Action.CONFIGURE
    else:
        action = Action.UNCHANGED
    return DiffResult(ChangeSetEntry(identity, action), live, merged)


async def diff_objects(
    client: ClusterClient, objects: Iterable[dict[str, Any]], owner: Owner
) -> list[DiffResult]:
    """Diff each object against the cluster in deterministic order.

    This is a read only reporting path so an object that fails to diff is
    logged and skipped rather than aborting the remaining objects.
    """
    results = []
    for obj in sort_objects(objects):
        identity = ObjectIdentity.from_object(obj)
        try:
            results.append(await diff_object(client, obj, owner))
        except ClusterException as err:
            _LOGGER.error("Unable to diff %s: %s", identity, err)
    return results


def change_set(results: Iterable[DiffResult]) -> ChangeSet:
    """Return the change set for the diff results."""
    return ChangeSet([result.entry for result in results])


def mask_secret_values(
    live: dict[str, Any], merged: dict[str, Any]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Replace Secret values with placeholders that still show which keys changed."""
    live = copy.deepcopy(live)
    merged = copy.deepcopy(merged)
    for field in SECRET_KEYS:
        before = live.get(field) or {}
        after = merged.get(field) or {}
        for key in set(before) | set(after):
            if key in before and key in after and before[key] != after[key]:
                before[key] = f"{MASK} (before)"
                after[key] = f"{MASK} (after)"
                continue
            if key in before:
                before[key] = MASK
            if key in after:
                after[key] = MASK
    return live, merged


def _canonical(obj: dict[str, Any]) -> list[str]:
    return yaml.dump(obj, sort_keys=True, default_flow_style=False).splitlines()


def perform_object_diff(
    live: dict[str, Any],
    merged: dict[str, Any],
    identity: ObjectIdentity,
    n: int,
    limit_bytes: int,
) -> Generator[str, None, None]:
    """Generate a unified diff between the live and merged object."""
    diff_text = difflib.unified_diff(
        a=_canonical(live),
        b=_canonical(merged),
        fromfile=f"live {identity}",
        tofile=f"merged {identity}",
        n=n,
        lineterm="",
    )
    size = 0
    for line in diff_text:
        size += len(line)
        if limit_bytes and size > limit_bytes:
            yield _TRUNCATE
            break
        yield line


def diff_report(
    results: Iterable[DiffResult], options: DiffOptions
) -> Generator[str, None, None]:
    """Generate the report lines for the diff results.

    Every object gets a summary line and only configured objects get an
    inline diff, since there is nothing to compare for created objects.
    """
    for result in results:
        yield f"{result.action} {result.identity} (server dry run)"
        if not options.show_diff or result.action != Action.CONFIGURE:
            continue
        live = normalize(result.live or {})
        merged = normalize(result.merged)
        if options.mask_secrets and result.identity.kind == SECRET_KIND:
            live, merged = mask_secret_values(live, merged)
        yield from perform_object_diff(
            live, merged, result.identity, options.context_lines, options.limit_bytes
        )
