"""Cluster client that issues kubectl commands.

Objects are passed to kubectl as YAML on stdin and results are read back as
YAML from stdout:
```python
from kube_apply.cluster import KubectlClient
from kube_apply.config import KubectlOptions

client = KubectlClient(KubectlOptions(context="kind-dev"))
live, merged = await client.dry_run_apply(obj, owner)
```
"""

import logging
from typing import Any

import yaml

from kube_apply import command, readiness
from kube_apply.config import KubectlOptions, PropagationPolicy
from kube_apply.exceptions import KubectlException
from kube_apply.manifest import ObjectIdentity, Owner
from kube_apply.status import Status, StatusInfo

from .client import ClusterClient

_LOGGER = logging.getLogger(__name__)


def resource_arg(identity: ObjectIdentity) -> str:
    """Return the fully qualified resource argument for kubectl, e.g. `Deployment.v1.apps`."""
    if not identity.group:
        return identity.kind
    if identity.version:
        return f"{identity.kind}.{identity.version}.{identity.group}"
    return f"{identity.kind}.{identity.group}"


def _namespace_args(identity: ObjectIdentity) -> list[str]:
    if identity.namespace:
        return ["--namespace", identity.namespace]
    return []


def _parse(out: str, description: str) -> dict[str, Any] | None:
    try:
        doc = yaml.safe_load(out)
    except yaml.YAMLError as err:
        raise KubectlException(
            f"Unable to parse kubectl output for {description}: {err}"
        ) from err
    if doc is not None and not isinstance(doc, dict):
        raise KubectlException(f"Unexpected kubectl output for {description}: {doc}")
    return doc


class KubectlClient(ClusterClient):
    """ClusterClient implementation backed by the kubectl binary."""

    def __init__(self, options: KubectlOptions | None = None) -> None:
        """Initialize KubectlClient."""
        self._options = options or KubectlOptions()

    async def _run(self, args: list[str], stdin: bytes | None = None) -> str:
        cmd = command.Command(self._options.base_args + args, exc=KubectlException)
        return await command.run(cmd, stdin=stdin)

    async def _server_side_apply(
        self, obj: dict[str, Any], owner: Owner, dry_run: bool
    ) -> dict[str, Any]:
        identity = ObjectIdentity.from_object(obj)
        args = [
            "apply",
            "--server-side",
            f"--field-manager={owner.field_manager}",
            "--force-conflicts",
            "--output=yaml",
            "--filename=-",
        ]
        if dry_run:
            args.append("--dry-run=server")
        content = yaml.dump(obj, sort_keys=False).encode("utf-8")
        out = await self._run(args, stdin=content)
        if (result := _parse(out, str(identity))) is None:
            raise KubectlException(f"kubectl apply returned no object for {identity}")
        return result

    async def dry_run_apply(
        self, obj: dict[str, Any], owner: Owner
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """Perform a server-side apply dry run of the object."""
        live = await self.get(ObjectIdentity.from_object(obj))
        merged = await self._server_side_apply(obj, owner, dry_run=True)
        return live, merged

    async def apply(self, obj: dict[str, Any], owner: Owner) -> dict[str, Any]:
        """Server-side apply the object, returning the stored object."""
        return await self._server_side_apply(obj, owner, dry_run=False)

    async def get(self, identity: ObjectIdentity) -> dict[str, Any] | None:
        """Return the live object or None if it does not exist."""
        args = [
            "get",
            resource_arg(identity),
            identity.name,
            "--ignore-not-found",
            "--output=yaml",
        ]
        args.extend(_namespace_args(identity))
        out = await self._run(args)
        if not out.strip():
            return None
        return _parse(out, str(identity))

    async def delete(
        self,
        identity: ObjectIdentity,
        propagation_policy: PropagationPolicy = PropagationPolicy.BACKGROUND,
    ) -> None:
        """Request deletion of the object."""
        args = [
            "delete",
            resource_arg(identity),
            identity.name,
            "--ignore-not-found",
            "--wait=false",
            f"--cascade={propagation_policy}",
        ]
        args.extend(_namespace_args(identity))
        await self._run(args)

    async def poll_ready(self, identity: ObjectIdentity) -> StatusInfo:
        """Return the current readiness of the object."""
        if (obj := await self.get(identity)) is None:
            return StatusInfo(Status.PENDING, "not found")
        if (obj.get("metadata") or {}).get("deletionTimestamp"):
            return StatusInfo(Status.PENDING, "terminating")
        return readiness.compute_status(obj)

    async def poll_absent(self, identity: ObjectIdentity) -> bool:
        """Return True once the object no longer exists."""
        return await self.get(identity) is None
