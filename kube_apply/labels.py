"""Library for stamping ownership metadata on desired objects.

Every object submitted to the cluster carries the labels of the instance
that owns it. These labels are how pruning confirms an object still belongs
to the instance before deleting it.

```python
from kube_apply.labels import set_owner_labels, validate_objects
from kube_apply.manifest import Owner

owner = Owner(name="podinfo", namespace="apps")
validate_objects(objects)
set_owner_labels(objects, owner)
```
"""

from collections.abc import Iterable
import logging
from typing import Any

from .exceptions import InputException
from .manifest import ObjectIdentity, Owner

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "set_owner_labels",
    "validate_objects",
]


def validate_objects(objects: Iterable[Any]) -> list[ObjectIdentity]:
    """Check the desired objects are well formed and return their identities.

    Raises InputException for objects that are not mappings, are missing
    the fields that make up an identity, or duplicate another object.
    """
    seen: dict[ObjectIdentity, int] = {}
    identities = []
    for index, obj in enumerate(objects):
        if not isinstance(obj, dict):
            raise InputException(
                f"Invalid object at index {index}, expected a mapping: {obj!r}"
            )
        identity = ObjectIdentity.from_object(obj)
        if (previous := seen.get(identity)) is not None:
            raise InputException(
                f"Duplicate object {identity} at index {index} (first seen at index {previous})"
            )
        seen[identity] = index
        identities.append(identity)
    return identities


def set_owner_labels(
    objects: list[dict[str, Any]], owner: Owner
) -> list[dict[str, Any]]:
    """Stamp the owner labels and annotations on each object.

    The objects are updated in place and returned. Existing labels and
    annotations are preserved and applying the labels again is a no-op.
    """
    for obj in objects:
        metadata = obj.setdefault("metadata", {})
        labels = metadata.get("labels") or {}
        labels.update(owner.labels)
        metadata["labels"] = labels
        annotations = metadata.get("annotations") or {}
        annotations.update(owner.annotations)
        metadata["annotations"] = annotations
    _LOGGER.debug("Set owner labels on %d objects for %s", len(objects), owner.name)
    return objects
