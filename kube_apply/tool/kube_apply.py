"""Command line tool for applying modules to a kubernetes cluster."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from kube_apply.exceptions import ReconcileException

from . import apply, inventory

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for applying modules to a kubernetes cluster.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    apply.ApplyAction.register(subparsers)
    inventory.InventoryAction.register(subparsers)
    return parser


def _str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
    """Represent multi-line yaml strings as block scalars."""
    return dumper.represent_scalar(
        "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
    )


def main(argv: list[str] | None = None) -> None:
    """Kube-apply command line tool main entry point."""
    yaml.add_representer(str, _str_presenter)

    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ReconcileException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("kube-apply error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
