"""
kube-apply converges a kubernetes cluster to the desired objects of an instance.

Objects are applied with server-side apply, recorded in an inventory stored in
the cluster, and objects that a previous run applied but that are no longer
desired are pruned.
"""

__all__ = [
    "apply",
    "cluster",
    "config",
    "exceptions",
    "inventory",
    "manifest",
    "module",
    "prune",
    "reconcile",
    "resource_diff",
    "wait",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
