"""Representation of the objects managed by an instance.

An instance is a named set of kubernetes objects applied together. Each object
is addressed by an `ObjectIdentity`, stamped with the `Owner` metadata of the
instance and recorded in an `Inventory` that is stored in the cluster next to
the objects it tracks.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "ObjectIdentity",
    "Owner",
    "Action",
    "ChangeSetEntry",
    "ChangeSet",
    "InventoryEntry",
    "Inventory",
]

_LOGGER = logging.getLogger(__name__)


CRD_KIND = "CustomResourceDefinition"
NAMESPACE_KIND = "Namespace"
SECRET_KIND = "Secret"
CONFIG_MAP_KIND = "ConfigMap"

DEFAULT_FIELD_MANAGER = "kube-apply"
DEFAULT_OWNER_GROUP = "kube-apply.dev"

# Kinds that never carry a namespace. Used when filling in the instance
# namespace for objects rendered without one.
CLUSTER_SCOPED_KINDS = {
    "APIService",
    "CSIDriver",
    "CSINode",
    "ClusterIssuer",
    "ClusterRole",
    "ClusterRoleBinding",
    "ComponentStatus",
    CRD_KIND,
    "IngressClass",
    "MutatingWebhookConfiguration",
    NAMESPACE_KIND,
    "Node",
    "PersistentVolume",
    "PodSecurityPolicy",
    "PriorityClass",
    "RuntimeClass",
    "StorageClass",
    "ValidatingAdmissionPolicy",
    "ValidatingAdmissionPolicyBinding",
    "ValidatingWebhookConfiguration",
    "VolumeAttachment",
}

INVENTORY_KEY_SOURCE = "source"
INVENTORY_KEY_VERSION = "version"
INVENTORY_KEY_ENTRIES = "entries"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into its group and version, e.g. `apps/v1`."""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return "", api_version


@dataclass(frozen=True, kw_only=True)
class ObjectIdentity:
    """Identifier for a kubernetes object within a cluster.

    The version is carried along for display and API calls but is not part
    of equality: the same object may be served at more than one version.
    """

    group: str
    version: str = field(default="", compare=False)
    kind: str
    namespace: str | None = None
    name: str

    @classmethod
    def from_object(cls, doc: dict[str, Any]) -> "ObjectIdentity":
        """Return the identity of a raw kubernetes object."""
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        group, version = split_api_version(api_version)
        return cls(
            group=group,
            version=version,
            kind=kind,
            namespace=metadata.get("namespace") or None,
            name=name,
        )

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def sort_key(self) -> tuple[str, str, str, str]:
        """Deterministic ordering by kind, namespace then name."""
        return (self.kind, self.namespace or "", self.name, self.group)

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


def sort_identities(identities: Iterable[ObjectIdentity]) -> list[ObjectIdentity]:
    """Return the identities in deterministic order."""
    return sorted(identities, key=lambda identity: identity.sort_key)


def sort_objects(objects: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return the objects in deterministic identity order."""
    return sorted(objects, key=lambda obj: ObjectIdentity.from_object(obj).sort_key)


@dataclass(frozen=True, kw_only=True)
class Owner:
    """The instance that owns a set of objects and the field manager it applies with."""

    name: str
    """Name of the instance."""

    namespace: str
    """Namespace of the instance."""

    field_manager: str = DEFAULT_FIELD_MANAGER
    """Field manager used for server-side apply."""

    group: str = DEFAULT_OWNER_GROUP
    """Prefix for the owner labels and annotations."""

    @property
    def labels(self) -> dict[str, str]:
        """Labels identifying objects of this instance."""
        return {
            f"{self.group}/name": self.name,
            f"{self.group}/namespace": self.namespace,
        }

    @property
    def annotations(self) -> dict[str, str]:
        """Annotations identifying the field manager of this instance."""
        return {f"{self.group}/field-manager": self.field_manager}

    @property
    def prune_annotation(self) -> str:
        """Annotation that, when set to `disabled`, keeps an object from being pruned."""
        return f"{self.group}/prune"

    @property
    def inventory_name(self) -> str:
        """Name of the object that stores the inventory of this instance."""
        return f"{self.field_manager}.{self.name}"

    def owns(self, obj: dict[str, Any]) -> bool:
        """Return True if the object carries the labels of this instance."""
        labels = (obj.get("metadata") or {}).get("labels") or {}
        return all(labels.get(key) == value for key, value in self.labels.items())


class Action(StrEnum):
    """Action taken on an object."""

    CREATE = "created"
    CONFIGURE = "configured"
    UNCHANGED = "unchanged"
    DELETE = "deleted"
    SKIP = "skipped"


@dataclass(frozen=True)
class ChangeSetEntry:
    """The action taken on a single object."""

    identity: ObjectIdentity
    action: Action

    def __str__(self) -> str:
        return f"{self.identity} {self.action}"


@dataclass
class ChangeSet:
    """The ordered record of actions taken during an apply, prune or diff."""

    entries: list[ChangeSetEntry] = field(default_factory=list)

    def add(self, identity: ObjectIdentity, action: Action) -> ChangeSetEntry:
        """Record an action for an object."""
        entry = ChangeSetEntry(identity, action)
        self.entries.append(entry)
        return entry

    def extend(self, other: "ChangeSet") -> None:
        """Append all entries of another change set."""
        self.entries.extend(other.entries)

    def entries_for(self, action: Action) -> list[ChangeSetEntry]:
        return [entry for entry in self.entries if entry.action == action]

    @property
    def has_changes(self) -> bool:
        """Return True if any object was created, configured or deleted."""
        return any(
            entry.action in (Action.CREATE, Action.CONFIGURE, Action.DELETE)
            for entry in self.entries
        )

    def to_list(self) -> list[str]:
        return [str(entry) for entry in self.entries]

    def __iter__(self) -> Iterator[ChangeSetEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(order=True)
class InventoryEntry(DataClassDictMixin):
    """A serialized ObjectIdentity owned by an instance."""

    group: str
    kind: str
    name: str
    namespace: str | None = None
    version: str = ""

    @classmethod
    def from_identity(cls, identity: ObjectIdentity) -> "InventoryEntry":
        return cls(
            group=identity.group,
            kind=identity.kind,
            name=identity.name,
            namespace=identity.namespace,
            version=identity.version,
        )

    def to_identity(self) -> ObjectIdentity:
        return ObjectIdentity(
            group=self.group,
            version=self.version,
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
        )

    class Config(BaseConfig):
        omit_none = True


@dataclass
class Inventory(DataClassDictMixin):
    """The record of objects owned by an instance."""

    name: str
    """Name of the instance."""

    namespace: str
    """Namespace of the instance."""

    source: str = ""
    """Reference to the module the objects were built from."""

    version: str = ""
    """Version of the module the objects were built from."""

    entries: list[InventoryEntry] = field(default_factory=list)
    """Objects owned by the instance, in identity order."""

    @classmethod
    def from_objects(
        cls,
        name: str,
        namespace: str,
        objects: Iterable[dict[str, Any]],
        source: str = "",
        version: str = "",
    ) -> "Inventory":
        """Create an inventory containing the specified objects."""
        inventory = cls(name=name, namespace=namespace, source=source, version=version)
        inventory.add_objects(objects)
        return inventory

    def add_objects(self, objects: Iterable[dict[str, Any]]) -> None:
        """Add objects to the inventory, keeping entries unique and ordered."""
        self.add_identities(ObjectIdentity.from_object(obj) for obj in objects)

    def add_identities(self, identities: Iterable[ObjectIdentity]) -> None:
        members = {entry.to_identity(): entry for entry in self.entries}
        for identity in identities:
            members[identity] = InventoryEntry.from_identity(identity)
        self.entries = [
            members[identity] for identity in sort_identities(members.keys())
        ]

    @property
    def identities(self) -> list[ObjectIdentity]:
        return [entry.to_identity() for entry in self.entries]

    def to_config_map(self, owner: Owner) -> dict[str, Any]:
        """Return the ConfigMap object used to persist the inventory."""
        return {
            "apiVersion": "v1",
            "kind": CONFIG_MAP_KIND,
            "metadata": {
                "name": owner.inventory_name,
                "namespace": self.namespace,
                "labels": {
                    **owner.labels,
                    "app.kubernetes.io/managed-by": owner.field_manager,
                },
            },
            "data": {
                INVENTORY_KEY_SOURCE: self.source,
                INVENTORY_KEY_VERSION: self.version,
                INVENTORY_KEY_ENTRIES: yaml_encode(
                    self.entries, list[InventoryEntry]  # type: ignore[arg-type]
                ),
            },
        }

    @classmethod
    def from_config_map(cls, owner: Owner, doc: dict[str, Any]) -> "Inventory":
        """Parse an inventory from its persisted ConfigMap."""
        data = doc.get("data") or {}
        if INVENTORY_KEY_ENTRIES not in data:
            raise InputException(
                f"Invalid inventory {owner.inventory_name} missing data.{INVENTORY_KEY_ENTRIES}"
            )
        entries = yaml_decode(
            data[INVENTORY_KEY_ENTRIES] or "[]", list[InventoryEntry]  # type: ignore[arg-type]
        )
        return cls(
            name=owner.name,
            namespace=owner.namespace,
            source=data.get(INVENTORY_KEY_SOURCE, ""),
            version=data.get(INVENTORY_KEY_VERSION, ""),
            entries=list(entries),
        )
