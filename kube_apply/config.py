"""Configuration objects for kube-apply."""

from dataclasses import dataclass, field
from enum import StrEnum

from .manifest import DEFAULT_FIELD_MANAGER, DEFAULT_OWNER_GROUP, Owner


@dataclass(frozen=True)
class DiffOptions:
    """Configuration for reporting a server-side dry run."""

    show_diff: bool = False
    """Print a unified diff for objects that would be configured."""

    context_lines: int = 3
    """Lines of unified diff context."""

    mask_secrets: bool = True
    """Replace Secret values with a placeholder in diff output."""

    limit_bytes: int = 0
    """Maximum bytes for each object diff (0=unlimited)."""


@dataclass(frozen=True)
class WaitOptions:
    """Configuration for waiting on object readiness or termination."""

    timeout: float = 300.0
    """Seconds to wait when the caller does not pass a deadline."""

    interval: float = 2.0
    """Seconds between polls of a single object."""

    concurrency: int = 10
    """Maximum number of in-flight polls against the cluster API."""


@dataclass(frozen=True)
class ApplyOptions:
    """Configuration for applying objects."""

    wait_for_definitions: bool = True
    """Wait for CRDs and Namespaces to be ready before applying the objects that use them."""

    wait: WaitOptions = field(default_factory=WaitOptions)


class PropagationPolicy(StrEnum):
    """Garbage collection policy for the dependents of a deleted object."""

    BACKGROUND = "background"
    FOREGROUND = "foreground"
    ORPHAN = "orphan"


@dataclass(frozen=True)
class PruneOptions:
    """Configuration for deleting stale objects."""

    propagation_policy: PropagationPolicy = PropagationPolicy.BACKGROUND


class InventoryPolicy(StrEnum):
    """Ordering of inventory persistence relative to pruning.

    `PERSIST_THEN_PRUNE` favors forward progress: the new inventory is stored
    before stale objects are deleted, so a failed prune leaves objects behind
    that no inventory tracks anymore.

    `PRUNE_THEN_PERSIST` favors consistency: stale objects are deleted first
    and a failed prune leaves the old inventory in place, so the next run
    computes the same stale set again.
    """

    PERSIST_THEN_PRUNE = "persist-then-prune"
    PRUNE_THEN_PERSIST = "prune-then-persist"


@dataclass(frozen=True)
class ReconcileConfig:
    """Configuration for a single reconcile run of an instance."""

    name: str
    """Name of the instance."""

    namespace: str
    """Namespace of the instance and its inventory."""

    source: str = ""
    """Module reference the objects were built from."""

    version: str = ""
    """Module version the objects were built from."""

    dry_run: bool = False
    """Only report what would change with a server-side dry run."""

    wait: bool = True
    """Wait for applied objects to be ready and pruned objects to be gone."""

    timeout: float = 300.0
    """Deadline in seconds for the whole run."""

    field_manager: str = DEFAULT_FIELD_MANAGER
    """Field manager used for server-side apply."""

    owner_group: str = DEFAULT_OWNER_GROUP
    """Prefix of the ownership labels stamped on every object."""

    inventory_policy: InventoryPolicy = InventoryPolicy.PERSIST_THEN_PRUNE

    diff: DiffOptions = field(default_factory=DiffOptions)
    apply: ApplyOptions = field(default_factory=ApplyOptions)
    prune: PruneOptions = field(default_factory=PruneOptions)
    wait_options: WaitOptions = field(default_factory=WaitOptions)

    @property
    def owner(self) -> Owner:
        """Return the owner of the objects applied by this run."""
        return Owner(
            name=self.name,
            namespace=self.namespace,
            field_manager=self.field_manager,
            group=self.owner_group,
        )


@dataclass(frozen=True)
class KubectlOptions:
    """Configuration for the kubectl cluster client."""

    kubectl: str = "kubectl"
    """Path to the kubectl binary."""

    kubeconfig: str | None = None
    """Value of the kubectl --kubeconfig flag."""

    context: str | None = None
    """Value of the kubectl --context flag."""

    request_timeout: str | None = None
    """Value of the kubectl --request-timeout flag, e.g. `30s`."""

    @property
    def base_args(self) -> list[str]:
        """kubectl CLI arguments built from the options."""
        args = [self.kubectl]
        if self.kubeconfig:
            args.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            args.extend(["--context", self.context])
        if self.request_timeout:
            args.extend(["--request-timeout", self.request_timeout])
        return args
