"""Exceptions related to kube-apply."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manifest import ChangeSet, ObjectIdentity
    from .reconcile import ReconcileResult, Step

__all__ = [
    "ReconcileException",
    "InputException",
    "CommandException",
    "ClusterException",
    "ApplyError",
    "InventoryException",
    "PruneError",
    "DeadlineExceededError",
    "WaitTimeoutError",
    "ResourceFailedError",
    "ReconcileError",
]


class ReconcileException(Exception):
    """Generic base exception used for this library."""


class InputException(ReconcileException):
    """Raised when the desired objects or input values are not formatted as expected."""


class CommandException(ReconcileException):
    """Raised when there is a failure running a subcommand."""


class ClusterException(ReconcileException):
    """Raised when a cluster API operation fails."""


class KubectlException(CommandException, ClusterException):
    """Raised when there is a failure running a kubectl command."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class ApplyError(ReconcileException):
    """Raised when an object fails to apply, aborting the remaining objects."""

    def __init__(
        self, identity: "ObjectIdentity", change_set: "ChangeSet", message: str
    ) -> None:
        super().__init__(f"{identity} apply failed: {message}")
        self.identity = identity
        self.change_set = change_set


class InventoryException(ReconcileException):
    """Raised when the inventory can't be read or persisted."""


class PruneError(ReconcileException):
    """Raised when a stale object fails to be deleted."""

    def __init__(
        self, identity: "ObjectIdentity", change_set: "ChangeSet", message: str
    ) -> None:
        super().__init__(f"{identity} delete failed: {message}")
        self.identity = identity
        self.change_set = change_set


class DeadlineExceededError(ReconcileException):
    """Raised when an operation does not complete before the run deadline."""


class WaitTimeoutError(DeadlineExceededError):
    """Raised when objects are still pending when the wait deadline elapses."""

    def __init__(self, pending: list["ObjectIdentity"], condition: str) -> None:
        names = ", ".join(str(identity) for identity in pending)
        super().__init__(f"timeout waiting for {condition}: [{names}]")
        self.pending = pending
        self.condition = condition


class ResourceFailedError(ReconcileException):
    """Raised when a resource has failed and is in a terminal state."""

    def __init__(self, resource_name: str, message: str | None) -> None:
        super().__init__(
            f"Resource {resource_name} failed: {message or 'Unknown error'}"
        )
        self.resource_name = resource_name
        self.message = message


class ReconcileError(ReconcileException):
    """Raised when a reconcile step fails, carrying the results gathered so far."""

    def __init__(
        self, step: "Step", result: "ReconcileResult", cause: ReconcileException
    ) -> None:
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.result = result
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        """Return True if the step failed because the deadline elapsed."""
        return isinstance(self.cause, DeadlineExceededError)
