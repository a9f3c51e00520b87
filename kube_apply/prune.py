"""Library for deleting stale objects of an instance."""

from collections.abc import Iterable
import logging

from .cluster import ClusterClient
from .config import PruneOptions
from .exceptions import ClusterException, PruneError
from .manifest import Action, ChangeSet, ObjectIdentity, Owner

__all__ = [
    "prune",
]

_LOGGER = logging.getLogger(__name__)

PRUNE_DISABLED = "disabled"


async def prune(
    client: ClusterClient,
    stale: Iterable[ObjectIdentity],
    owner: Owner,
    options: PruneOptions | None = None,
    change_set: ChangeSet | None = None,
) -> ChangeSet:
    """Delete the stale objects, returning the action taken for each.

    An object that no longer carries the owner labels was adopted by someone
    else and is skipped, as is an object that opted out of pruning with the
    owner's prune annotation. Objects that are already gone count as deleted.
    Entries are recorded into `change_set` as they happen.

    Raises:
        PruneError: For the first object that fails to delete, carrying the
            entries recorded before the failure.
    """
    options = options or PruneOptions()
    if change_set is None:
        change_set = ChangeSet()
    for identity in stale:
        try:
            live = await client.get(identity)
            if live is None:
                change_set.add(identity, Action.DELETE)
                continue
            annotations = (live.get("metadata") or {}).get("annotations") or {}
            if not owner.owns(live):
                _LOGGER.warning("Skipping %s: not owned by %s", identity, owner.name)
                change_set.add(identity, Action.SKIP)
                continue
            if annotations.get(owner.prune_annotation) == PRUNE_DISABLED:
                _LOGGER.info("Skipping %s: pruning disabled", identity)
                change_set.add(identity, Action.SKIP)
                continue
            await client.delete(identity, options.propagation_policy)
        except ClusterException as err:
            _LOGGER.error("Failed to delete %s: %s", identity, err)
            raise PruneError(identity, change_set, str(err)) from err
        _LOGGER.info("%s", change_set.add(identity, Action.DELETE))
    return change_set
