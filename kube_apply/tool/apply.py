"""Kube-apply apply action."""

import logging
import pathlib
import sys
import tempfile
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from kube_apply import module as module_lib
from kube_apply import resource_diff
from kube_apply.config import (
    DiffOptions,
    InventoryPolicy,
    ReconcileConfig,
)
from kube_apply.exceptions import ReconcileError
from kube_apply.manifest import DEFAULT_FIELD_MANAGER, ChangeSet
from kube_apply.reconcile import Reconciler

from . import common

_LOGGER = logging.getLogger(__name__)


def _print_change_set(change_set: ChangeSet) -> None:
    for entry in change_set:
        print(entry)


class ApplyAction:
    """Kube-apply apply action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "apply",
                help="Install or upgrade an instance of a module",
                description=(
                    "Build the objects of a module, apply them with server-side "
                    "apply and delete the objects a previous version created "
                    "that are no longer part of the module."
                ),
            ),
        )
        args.add_argument("name", help="Name of the instance")
        args.add_argument(
            "module",
            help="Local path or oci:// URL of the module",
        )
        args.add_argument(
            "--version",
            "-v",
            default=None,
            help="Version of the module, used as the OCI artifact tag",
        )
        args.add_argument(
            "--values",
            "-f",
            type=pathlib.Path,
            action="append",
            default=[],
            help="Helm values file, merged in the order specified",
        )
        args.add_argument(
            "--dry-run",
            default=False,
            action=BooleanOptionalAction,
            help="Perform a server-side apply dry run",
        )
        args.add_argument(
            "--diff",
            default=False,
            action=BooleanOptionalAction,
            help="Perform a server-side apply dry run and print the diff",
        )
        args.add_argument(
            "--wait",
            default=True,
            action=BooleanOptionalAction,
            help="Wait for the applied objects to become ready",
        )
        args.add_argument(
            "--creds",
            default=None,
            help="Credentials for the container registry in the format USER[:PASSWORD]",
        )
        args.add_argument(
            "--timeout",
            type=float,
            default=300.0,
            help="Seconds to wait for the whole apply to complete",
        )
        args.add_argument(
            "--field-manager",
            default=DEFAULT_FIELD_MANAGER,
            help="Field manager used for server-side apply",
        )
        args.add_argument(
            "--prune-before-persist",
            default=False,
            action=BooleanOptionalAction,
            help="Delete stale objects before storing the new inventory",
        )
        args.add_argument(
            "--show-secrets",
            default=False,
            action=BooleanOptionalAction,
            help="Show Secret values in the diff instead of a placeholder",
        )
        args.add_argument(
            "--limit-bytes",
            type=int,
            default=10000,
            help="Maximum bytes of the diff of a single object (0=unlimited)",
        )
        common.add_cluster_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        name: str,
        module: str,
        namespace: str,
        version: str | None,
        values: list[pathlib.Path],
        dry_run: bool,
        diff: bool,
        wait: bool,
        creds: str | None,
        timeout: float,
        field_manager: str,
        prune_before_persist: bool,
        show_secrets: bool,
        limit_bytes: int,
        kubeconfig: str | None,
        context: str | None,
        request_timeout: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        _LOGGER.info("Building %s", module)
        with tempfile.TemporaryDirectory(prefix="kube-apply-") as tmp_dir:
            path = await module_lib.fetch_module(
                module, version, pathlib.Path(tmp_dir), creds, timeout
            )
            objects = await module_lib.build_objects(name, namespace, path, values)

        config = ReconcileConfig(
            name=name,
            namespace=namespace,
            source=module,
            version=version or "",
            dry_run=dry_run or diff,
            wait=wait,
            timeout=timeout,
            field_manager=field_manager,
            inventory_policy=(
                InventoryPolicy.PRUNE_THEN_PERSIST
                if prune_before_persist
                else InventoryPolicy.PERSIST_THEN_PRUNE
            ),
            diff=DiffOptions(
                show_diff=diff,
                mask_secrets=not show_secrets,
                limit_bytes=limit_bytes,
            ),
        )
        client = common.create_client(kubeconfig, context, request_timeout)
        try:
            result = await Reconciler(client, config).run(objects)
        except ReconcileError as err:
            _print_change_set(err.result.change_set)
            raise

        if config.dry_run:
            for line in resource_diff.diff_report(result.diff, config.diff):
                print(line)
            return

        _print_change_set(result.change_set)
        if result.ready is not None:
            print(f"{len(result.ready.ready)} object(s) ready", file=sys.stderr)
        if result.terminated is not None and result.terminated.ready:
            print(
                f"{len(result.terminated.ready)} object(s) finalized", file=sys.stderr
            )

