"""Module for an in memory cluster.

The in memory cluster approximates the API server closely enough to exercise
the reconcile steps without a real cluster: server-side apply merges the
applied fields into the live object and drops fields the same field manager
applied previously, deletion honors finalizers and cascades to dependents, and
readiness is computed from whatever status a test assigns to an object.
"""

import copy
from collections.abc import Iterable
import logging
from typing import Any

from kube_apply.config import PropagationPolicy
from kube_apply.exceptions import ClusterException
from kube_apply.manifest import CRD_KIND, NAMESPACE_KIND, ObjectIdentity, Owner
from kube_apply import readiness
from kube_apply.status import Status, StatusInfo

from .client import ClusterClient

_LOGGER = logging.getLogger(__name__)

DRY_RUN_APPLY = "dry_run_apply"
APPLY = "apply"
GET = "get"
DELETE = "delete"
POLL_READY = "poll_ready"
POLL_ABSENT = "poll_absent"

# Status the API server assigns to built-in kinds as soon as they are created
INITIAL_STATUS: dict[str, dict[str, Any]] = {
    NAMESPACE_KIND: {"phase": "Active"},
    CRD_KIND: {
        "conditions": [
            {"type": "NamesAccepted", "status": "True"},
            {"type": "Established", "status": "True"},
        ]
    },
}


def _merge(live: dict[str, Any], applied: dict[str, Any]) -> dict[str, Any]:
    """Merge applied fields into the live object, replacing lists and scalars."""
    result = copy.deepcopy(live)
    for key, value in applied.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _remove_fields(live: dict[str, Any], previous: dict[str, Any]) -> dict[str, Any]:
    """Remove fields a field manager applied previously from the live object."""
    result = copy.deepcopy(live)
    for key, value in previous.items():
        if key not in result:
            continue
        if isinstance(value, dict) and isinstance(result[key], dict):
            result[key] = _remove_fields(result[key], value)
        else:
            del result[key]
    return result


def _spec(obj: dict[str, Any]) -> dict[str, Any]:
    """Return the fields that make up the generation of an object."""
    return {k: v for k, v in obj.items() if k not in ("metadata", "status")}


class InMemoryCluster(ClusterClient):
    """In-memory implementation of the ClusterClient interface.

    Every call is recorded in `calls` as an `(operation, identity)` tuple so
    tests can assert on the order of operations. Errors for a specific
    operation and object can be injected with `inject_error`.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryCluster."""
        self._objects: dict[ObjectIdentity, dict[str, Any]] = {}
        self._applied: dict[tuple[str, ObjectIdentity], dict[str, Any]] = {}
        self._errors: dict[tuple[str, ObjectIdentity], ClusterException] = {}
        self._next_uid = 1
        self._resource_version = 1
        self.calls: list[tuple[str, ObjectIdentity]] = []

    def _record(self, operation: str, identity: ObjectIdentity) -> None:
        self.calls.append((operation, identity))
        if (err := self._errors.get((operation, identity))) is not None:
            raise err

    def inject_error(
        self,
        operation: str,
        identity: ObjectIdentity,
        error: ClusterException | None = None,
    ) -> None:
        """Fail every future `operation` on the object with `error`."""
        self._errors[(operation, identity)] = error or ClusterException(
            f"injected {operation} failure for {identity}"
        )

    def clear_errors(self) -> None:
        """Remove all injected errors."""
        self._errors.clear()

    def add_object(self, obj: dict[str, Any]) -> ObjectIdentity:
        """Add a live object directly, as if created by another client."""
        identity = ObjectIdentity.from_object(obj)
        self._objects[identity] = self._stamp(None, copy.deepcopy(obj))
        return identity

    def get_object(self, identity: ObjectIdentity) -> dict[str, Any] | None:
        """Return a copy of the live object without recording a call."""
        if (obj := self._objects.get(identity)) is None:
            return None
        return copy.deepcopy(obj)

    def list_objects(self) -> list[ObjectIdentity]:
        """Return the identities of all live objects."""
        return list(self._objects)

    def set_status(self, identity: ObjectIdentity, status: dict[str, Any]) -> None:
        """Replace the status of a live object, as a controller would."""
        if (obj := self._objects.get(identity)) is None:
            raise ClusterException(f"{identity} not found")
        obj["status"] = copy.deepcopy(status)

    def remove_finalizers(self, identity: ObjectIdentity) -> None:
        """Clear finalizers, completing a pending deletion."""
        if (obj := self._objects.get(identity)) is None:
            return
        obj["metadata"].pop("finalizers", None)
        if "deletionTimestamp" in obj["metadata"]:
            self._remove(identity, PropagationPolicy.BACKGROUND)

    def _stamp(
        self, live: dict[str, Any] | None, merged: dict[str, Any]
    ) -> dict[str, Any]:
        """Populate the server managed metadata of an object."""
        metadata = merged.setdefault("metadata", {})
        if live is None:
            metadata["uid"] = f"uid-{self._next_uid}"
            metadata["generation"] = 1
            self._next_uid += 1
        elif _spec(live) != _spec(merged):
            metadata["generation"] = live["metadata"].get("generation", 1) + 1
        metadata["resourceVersion"] = str(self._resource_version)
        self._resource_version += 1
        return merged

    def _server_side_apply(
        self, obj: dict[str, Any], owner: Owner
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        identity = ObjectIdentity.from_object(obj)
        live = self._objects.get(identity)
        applied = copy.deepcopy(obj)
        applied.pop("status", None)
        if live is None:
            merged = applied
            if (status := INITIAL_STATUS.get(identity.kind)) is not None:
                merged["status"] = copy.deepcopy(status)
        else:
            previous = self._applied.get((owner.field_manager, identity), {})
            merged = _merge(_remove_fields(live, _spec(previous)), applied)
        merged = self._stamp(live, merged)
        merged["metadata"]["managedFields"] = [
            {"manager": owner.field_manager, "operation": "Apply"}
        ]
        return (copy.deepcopy(live) if live is not None else None), merged

    async def dry_run_apply(
        self, obj: dict[str, Any], owner: Owner
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """Perform a server-side apply dry run of the object."""
        self._record(DRY_RUN_APPLY, ObjectIdentity.from_object(obj))
        return self._server_side_apply(obj, owner)

    async def apply(self, obj: dict[str, Any], owner: Owner) -> dict[str, Any]:
        """Server-side apply the object, returning the stored object."""
        identity = ObjectIdentity.from_object(obj)
        self._record(APPLY, identity)
        _, merged = self._server_side_apply(obj, owner)
        self._objects[identity] = merged
        self._applied[(owner.field_manager, identity)] = copy.deepcopy(obj)
        _LOGGER.debug("Applied %s", identity)
        return copy.deepcopy(merged)

    async def get(self, identity: ObjectIdentity) -> dict[str, Any] | None:
        """Return the live object or None if it does not exist."""
        self._record(GET, identity)
        return self.get_object(identity)

    def _dependents(self, uid: str) -> Iterable[ObjectIdentity]:
        for identity, obj in list(self._objects.items()):
            refs = obj["metadata"].get("ownerReferences") or []
            if any(ref.get("uid") == uid for ref in refs):
                yield identity

    def _remove(self, identity: ObjectIdentity, policy: PropagationPolicy) -> None:
        obj = self._objects.pop(identity)
        for key in [key for key in self._applied if key[1] == identity]:
            del self._applied[key]
        if policy == PropagationPolicy.ORPHAN:
            return
        for dependent in list(self._dependents(obj["metadata"]["uid"])):
            if dependent in self._objects:
                self._delete(dependent, policy)

    def _delete(self, identity: ObjectIdentity, policy: PropagationPolicy) -> None:
        if (obj := self._objects.get(identity)) is None:
            return
        if obj["metadata"].get("finalizers"):
            obj["metadata"].setdefault("deletionTimestamp", "1970-01-01T00:00:00Z")
            return
        self._remove(identity, policy)

    async def delete(
        self,
        identity: ObjectIdentity,
        propagation_policy: PropagationPolicy = PropagationPolicy.BACKGROUND,
    ) -> None:
        """Request deletion of the object."""
        self._record(DELETE, identity)
        self._delete(identity, propagation_policy)

    async def poll_ready(self, identity: ObjectIdentity) -> StatusInfo:
        """Return the current readiness of the object."""
        self._record(POLL_READY, identity)
        if (obj := self._objects.get(identity)) is None:
            return StatusInfo(Status.PENDING, "not found")
        if "deletionTimestamp" in obj["metadata"]:
            return StatusInfo(Status.PENDING, "terminating")
        return readiness.compute_status(obj)

    async def poll_absent(self, identity: ObjectIdentity) -> bool:
        """Return True once the object no longer exists."""
        self._record(POLL_ABSENT, identity)
        return identity not in self._objects
