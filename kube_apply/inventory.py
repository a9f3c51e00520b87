"""Storage for the inventory of objects owned by an instance.

The inventory is kept in a ConfigMap next to the instance. It is the record
that garbage collection works from: objects in the stored inventory that are
missing from the new desired set are stale and get pruned.

The stored inventory must only be replaced after the desired objects were
applied, and stale objects must be computed before it is replaced, otherwise
a failed run could forget about objects it still needs to delete.
"""

import logging

import yaml

from .cluster import ClusterClient
from .exceptions import ClusterException, InputException, InventoryException
from .manifest import CONFIG_MAP_KIND, Inventory, ObjectIdentity, Owner

__all__ = [
    "InventoryStorage",
]

_LOGGER = logging.getLogger(__name__)


class InventoryStorage:
    """Reads and writes the inventory of an instance in the cluster."""

    def __init__(self, client: ClusterClient, owner: Owner) -> None:
        """Initialize InventoryStorage."""
        self._client = client
        self._owner = owner

    @property
    def identity(self) -> ObjectIdentity:
        """Identity of the ConfigMap holding the inventory."""
        return ObjectIdentity(
            group="",
            version="v1",
            kind=CONFIG_MAP_KIND,
            namespace=self._owner.namespace,
            name=self._owner.inventory_name,
        )

    async def get_inventory(self) -> Inventory | None:
        """Return the stored inventory or None if the instance has none yet."""
        try:
            doc = await self._client.get(self.identity)
        except ClusterException as err:
            raise InventoryException(
                f"Unable to read inventory {self.identity}: {err}"
            ) from err
        if doc is None:
            return None
        try:
            return Inventory.from_config_map(self._owner, doc)
        except (InputException, yaml.YAMLError, LookupError, ValueError) as err:
            raise InventoryException(
                f"Unable to parse inventory {self.identity}: {err}"
            ) from err

    async def compute_stale(self, new_inventory: Inventory) -> list[ObjectIdentity]:
        """Return stored objects that are not part of the new inventory.

        Objects are matched by identity ignoring the API version, and are
        returned in stored order.
        """
        if (stored := await self.get_inventory()) is None:
            return []
        desired = set(new_inventory.identities)
        stale = [identity for identity in stored.identities if identity not in desired]
        _LOGGER.debug(
            "Found %d stale object(s) in inventory of %s", len(stale), self._owner.name
        )
        return stale

    async def persist(self, new_inventory: Inventory) -> None:
        """Replace the stored inventory with the new inventory."""
        try:
            await self._client.apply(
                new_inventory.to_config_map(self._owner), self._owner
            )
        except ClusterException as err:
            raise InventoryException(
                f"Unable to persist inventory {self.identity}: {err}"
            ) from err
        _LOGGER.info(
            "Persisted inventory %s with %d object(s)",
            self.identity,
            len(new_inventory.entries),
        )
