"""Readiness predicates for kubernetes objects.

`compute_status` inspects the status of a live object and reports whether it
is ready, still progressing, or failed in a way that waiting won't fix.
Workloads are ready once their rollout completed, other kinds follow the
common `Ready`, `Stalled` and `Reconciling` conditions and objects with no
status conditions at all are ready as soon as they exist.
"""

from collections.abc import Callable
import logging
from typing import Any

from .status import Status, StatusInfo
from .manifest import CRD_KIND, NAMESPACE_KIND

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "compute_status",
]

READY = StatusInfo(Status.READY)


def _pending(message: str) -> StatusInfo:
    return StatusInfo(Status.PENDING, message)


def _failed(message: str) -> StatusInfo:
    return StatusInfo(Status.FAILED, message)


def _conditions(obj: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return the status conditions of the object keyed by type."""
    status = obj.get("status") or {}
    return {
        cond["type"]: cond
        for cond in status.get("conditions") or []
        if isinstance(cond, dict) and "type" in cond
    }


def _is_true(cond: dict[str, Any] | None) -> bool:
    return cond is not None and cond.get("status") == "True"


def _is_false(cond: dict[str, Any] | None) -> bool:
    return cond is not None and cond.get("status") == "False"


def _message(cond: dict[str, Any]) -> str:
    return cond.get("message") or cond.get("reason") or cond["type"]


def _generation_observed(obj: dict[str, Any]) -> bool:
    """Return False if the controller has not yet seen the latest spec."""
    generation = (obj.get("metadata") or {}).get("generation")
    observed = (obj.get("status") or {}).get("observedGeneration")
    if generation is None or observed is None:
        return True
    return int(observed) >= int(generation)


def _replicas(obj: dict[str, Any]) -> int:
    replicas = (obj.get("spec") or {}).get("replicas")
    return 1 if replicas is None else int(replicas)


def _deployment(obj: dict[str, Any]) -> StatusInfo:
    if not (status := obj.get("status")):
        return _pending("status not yet reported")
    if not _generation_observed(obj):
        return _pending("waiting for rollout to start")
    progressing = _conditions(obj).get("Progressing")
    if progressing and progressing.get("reason") == "ProgressDeadlineExceeded":
        return _failed(_message(progressing))
    replicas = _replicas(obj)
    updated = status.get("updatedReplicas", 0)
    available = status.get("availableReplicas", 0)
    if updated < replicas:
        return _pending(f"updated replicas: {updated}/{replicas}")
    if status.get("replicas", 0) > updated:
        return _pending("waiting for old replicas to terminate")
    if available < replicas:
        return _pending(f"available replicas: {available}/{replicas}")
    return READY


def _stateful_set(obj: dict[str, Any]) -> StatusInfo:
    if not (status := obj.get("status")):
        return _pending("status not yet reported")
    if not _generation_observed(obj):
        return _pending("waiting for rollout to start")
    replicas = _replicas(obj)
    ready = status.get("readyReplicas", 0)
    if ready < replicas:
        return _pending(f"ready replicas: {ready}/{replicas}")
    strategy = ((obj.get("spec") or {}).get("updateStrategy") or {}).get("type")
    if strategy == "OnDelete":
        return READY
    updated = status.get("updatedReplicas", 0)
    if updated < replicas:
        return _pending(f"updated replicas: {updated}/{replicas}")
    if status.get("currentRevision") != status.get("updateRevision"):
        return _pending("waiting for the update revision to roll out")
    return READY


def _daemon_set(obj: dict[str, Any]) -> StatusInfo:
    if not (status := obj.get("status")):
        return _pending("status not yet reported")
    if not _generation_observed(obj):
        return _pending("waiting for rollout to start")
    desired = status.get("desiredNumberScheduled", 0)
    updated = status.get("updatedNumberScheduled", 0)
    available = status.get("numberAvailable", 0)
    if updated < desired:
        return _pending(f"updated pods: {updated}/{desired}")
    if available < desired:
        return _pending(f"available pods: {available}/{desired}")
    return READY


def _replica_set(obj: dict[str, Any]) -> StatusInfo:
    if not (status := obj.get("status")):
        return _pending("status not yet reported")
    replicas = _replicas(obj)
    available = status.get("availableReplicas", 0)
    if available < replicas:
        return _pending(f"available replicas: {available}/{replicas}")
    return READY


def _job(obj: dict[str, Any]) -> StatusInfo:
    conditions = _conditions(obj)
    if _is_true(failed := conditions.get("Failed")):
        return _failed(_message(failed))  # type: ignore[arg-type]
    if _is_true(conditions.get("Complete")):
        return READY
    return _pending("job in progress")


def _pod(obj: dict[str, Any]) -> StatusInfo:
    phase = (obj.get("status") or {}).get("phase")
    if phase == "Succeeded":
        return READY
    if phase == "Failed":
        return _failed((obj.get("status") or {}).get("message") or "pod failed")
    if phase == "Running" and _is_true(_conditions(obj).get("Ready")):
        return READY
    return _pending(f"pod phase {phase or 'unknown'}")


def _persistent_volume_claim(obj: dict[str, Any]) -> StatusInfo:
    phase = (obj.get("status") or {}).get("phase")
    if phase == "Bound":
        return READY
    if phase == "Lost":
        return _failed("claim lost its volume")
    return _pending(f"claim phase {phase or 'unknown'}")


def _namespace(obj: dict[str, Any]) -> StatusInfo:
    phase = (obj.get("status") or {}).get("phase")
    if phase == "Active":
        return READY
    return _pending(f"namespace phase {phase or 'unknown'}")


def _custom_resource_definition(obj: dict[str, Any]) -> StatusInfo:
    conditions = _conditions(obj)
    if _is_false(names := conditions.get("NamesAccepted")):
        return _failed(_message(names))  # type: ignore[arg-type]
    if _is_true(conditions.get("Established")):
        return READY
    return _pending("waiting for definition to be established")


def _service(obj: dict[str, Any]) -> StatusInfo:
    if (obj.get("spec") or {}).get("type") != "LoadBalancer":
        return READY
    ingress = ((obj.get("status") or {}).get("loadBalancer") or {}).get("ingress")
    if ingress:
        return READY
    return _pending("waiting for load balancer ingress")


def _generic(obj: dict[str, Any]) -> StatusInfo:
    if not _generation_observed(obj):
        return _pending("waiting for generation to be observed")
    conditions = _conditions(obj)
    if _is_true(stalled := conditions.get("Stalled")):
        return _failed(_message(stalled))  # type: ignore[arg-type]
    if _is_true(reconciling := conditions.get("Reconciling")):
        return _pending(_message(reconciling))  # type: ignore[arg-type]
    if (ready := conditions.get("Ready")) is not None:
        if _is_true(ready):
            return READY
        return _pending(_message(ready))
    return READY


_PREDICATES: dict[str, Callable[[dict[str, Any]], StatusInfo]] = {
    "Deployment": _deployment,
    "StatefulSet": _stateful_set,
    "DaemonSet": _daemon_set,
    "ReplicaSet": _replica_set,
    "Job": _job,
    "Pod": _pod,
    "PersistentVolumeClaim": _persistent_volume_claim,
    NAMESPACE_KIND: _namespace,
    CRD_KIND: _custom_resource_definition,
    "Service": _service,
}


def compute_status(obj: dict[str, Any]) -> StatusInfo:
    """Return the readiness of a live object."""
    predicate = _PREDICATES.get(obj.get("kind", ""), _generic)
    return predicate(obj)
