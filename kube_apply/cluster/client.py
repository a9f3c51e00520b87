"""Cluster client capability used by the reconcile steps."""

from abc import ABC, abstractmethod
from typing import Any

from kube_apply.config import PropagationPolicy
from kube_apply.manifest import ObjectIdentity, Owner
from kube_apply.status import StatusInfo


class ClusterClient(ABC):
    """Abstract base class for the operations performed against a cluster.

    All operations address objects by `ObjectIdentity` or by the raw object
    and raise `ClusterException` when the cluster rejects the request or
    can't be reached. No operation retries.
    """

    @abstractmethod
    async def dry_run_apply(
        self, obj: dict[str, Any], owner: Owner
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """Perform a server-side apply dry run of the object.

        The apply uses the owner's field manager and forces conflicts.

        Returns:
            The live object, or None when it does not exist yet, and the
            object as the server would store it after the apply.
        """

    @abstractmethod
    async def apply(self, obj: dict[str, Any], owner: Owner) -> dict[str, Any]:
        """Server-side apply the object, forcing conflicts, returning the stored object."""

    @abstractmethod
    async def get(self, identity: ObjectIdentity) -> dict[str, Any] | None:
        """Return the live object or None if it does not exist."""

    @abstractmethod
    async def delete(
        self,
        identity: ObjectIdentity,
        propagation_policy: PropagationPolicy = PropagationPolicy.BACKGROUND,
    ) -> None:
        """Request deletion of the object.

        Deleting an object that does not exist is not an error. The object may
        linger after this returns while finalizers run.
        """

    @abstractmethod
    async def poll_ready(self, identity: ObjectIdentity) -> StatusInfo:
        """Return the current readiness of the object."""

    @abstractmethod
    async def poll_absent(self, identity: ObjectIdentity) -> bool:
        """Return True once the object no longer exists."""
