"""Flags shared by the commands that talk to a cluster."""

from argparse import ArgumentParser

from kube_apply.cluster import ClusterClient, KubectlClient
from kube_apply.config import KubectlOptions

DEFAULT_NAMESPACE = "default"


def add_cluster_flags(args: ArgumentParser) -> None:
    """Add the cluster connection flags to the arguments object."""
    args.add_argument(
        "--namespace",
        "-n",
        default=DEFAULT_NAMESPACE,
        help="Namespace of the instance and its inventory",
    )
    args.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to the kubeconfig file used by kubectl",
    )
    args.add_argument(
        "--context",
        default=None,
        help="Name of the kubeconfig context to use",
    )
    args.add_argument(
        "--request-timeout",
        default=None,
        help="Timeout of a single kubectl request, e.g. 30s",
    )


def create_client(
    kubeconfig: str | None, context: str | None, request_timeout: str | None
) -> ClusterClient:
    """Return the cluster client for the connection flags."""
    return KubectlClient(
        KubectlOptions(
            kubeconfig=kubeconfig, context=context, request_timeout=request_timeout
        )
    )
