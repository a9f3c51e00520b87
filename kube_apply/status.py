"""Readiness status of an object in the cluster."""

from enum import StrEnum
from dataclasses import dataclass


class Status(StrEnum):
    """Readiness of an object."""

    PENDING = "Pending"
    READY = "Ready"
    FAILED = "Failed"


@dataclass(frozen=True)
class StatusInfo:
    """Readiness and an optional explanation, e.g. the replicas still rolling out."""

    status: Status
    message: str | None = None

    def __str__(self) -> str:
        """Return a string representation of the status."""
        if self.message:
            return f"{self.status}: {self.message}"
        return str(self.status)

