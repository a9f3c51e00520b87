"""Kube-apply inventory action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from kube_apply.exceptions import InputException
from kube_apply.inventory import InventoryStorage
from kube_apply.manifest import DEFAULT_FIELD_MANAGER, Owner

from . import common
from .format import FORMATTERS, get_formatter

_LOGGER = logging.getLogger(__name__)

COLUMNS = ["kind", "namespace", "name", "version"]


class InventoryAction:
    """Kube-apply inventory action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "inventory",
                help="List the objects owned by an instance",
                description="Print the inventory stored in the cluster for an instance.",
            ),
        )
        args.add_argument("name", help="Name of the instance")
        args.add_argument(
            "--output",
            "-o",
            choices=FORMATTERS,
            default="text",
            help="Output format of the command",
        )
        args.add_argument(
            "--field-manager",
            default=DEFAULT_FIELD_MANAGER,
            help="Field manager the instance was applied with",
        )
        common.add_cluster_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        name: str,
        namespace: str,
        output: str,
        field_manager: str,
        kubeconfig: str | None,
        context: str | None,
        request_timeout: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        owner = Owner(name=name, namespace=namespace, field_manager=field_manager)
        client = common.create_client(kubeconfig, context, request_timeout)
        inventory = await InventoryStorage(client, owner).get_inventory()
        if inventory is None:
            raise InputException(f"No inventory found for {namespace}/{name}")
        _LOGGER.debug(
            "Inventory of %s built from %s %s",
            name,
            inventory.source,
            inventory.version,
        )
        records = [entry.to_dict() for entry in inventory.entries]
        get_formatter(output, COLUMNS).print(records)
