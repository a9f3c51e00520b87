"""Library for fetching a module and building its desired objects.

A module is a directory containing either a Helm chart, a kustomization or
plain YAML manifests. Modules may also be published as OCI artifacts:

```python
from kube_apply import module

path = await module.fetch_module("oci://ghcr.io/org/app", "1.0.0", tmp_dir)
objects = await module.build_objects("app", "apps", path, values=[values_file])
```
"""

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

import aiofiles
from aiofiles.ospath import exists, isdir, isfile
from oras.client import OrasClient
import yaml

from . import command
from .exceptions import HelmException, InputException, KustomizeException
from .manifest import CLUSTER_SCOPED_KINDS

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "Credentials",
    "fetch_module",
    "build_objects",
]

OCI_PREFIX = "oci://"
HELM_BIN = "helm"
KUSTOMIZE_BIN = "kustomize"
HELM_CHART = "Chart.yaml"
KUSTOMIZATION_FILES = ["kustomization.yaml", "kustomization.yml", "Kustomization"]
MANIFEST_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class Credentials:
    """Registry credentials for pulling a module."""

    username: str
    password: str = ""

    @classmethod
    def parse(cls, creds: str) -> "Credentials":
        """Parse credentials in the form `user[:password]`."""
        username, _, password = creds.partition(":")
        if not username:
            raise InputException("Invalid credentials, expected USER[:PASSWORD]")
        return cls(username=username, password=password)


def _registry_host(reference: str) -> str:
    return reference.split("/", 1)[0]


async def fetch_module(
    url: str,
    version: str | None,
    dest: Path,
    creds: str | None = None,
    timeout: float | None = None,
) -> Path:
    """Return a local path containing the module.

    OCI artifacts are pulled into `dest`, anything else is treated as a local
    path and returned as is. The pull is abandoned after `timeout` seconds.
    """
    if not url.startswith(OCI_PREFIX):
        path = Path(url)
        if not await exists(path):
            raise InputException(f"Module path does not exist: {url}")
        return path

    reference = url[len(OCI_PREFIX) :]
    target = f"{reference}:{version}" if version else reference
    _LOGGER.info("Pulling module %s", target)
    client = OrasClient()
    if creds:
        auth = Credentials.parse(creds)
        _LOGGER.info("Using authentication for %s", _registry_host(reference))
        client.login(
            hostname=_registry_host(reference),
            username=auth.username,
            password=auth.password,
        )
    try:
        async with asyncio.timeout(timeout):
            res = await asyncio.to_thread(
                client.pull, target=target, outdir=str(dest)
            )
    except TimeoutError as err:
        raise InputException(
            f"Timed out after {timeout}s pulling module {target}"
        ) from err
    except (OSError, ValueError) as err:
        raise InputException(f"Unable to pull module {target}: {err}") from err
    _LOGGER.debug("Downloaded module files: %s", res)
    return dest


def parse_objects(content: str, source: str) -> list[dict[str, Any]]:
    """Parse a multi-document YAML stream into objects, dropping empty documents."""
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse manifests from {source}: {err}") from err
    objects = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise InputException(f"Invalid manifest in {source}: {doc!r}")
        objects.append(doc)
    return objects


async def _read_manifest(path: Path) -> list[dict[str, Any]]:
    async with aiofiles.open(str(path)) as manifest_file:
        content = await manifest_file.read()
    return parse_objects(content, str(path))


async def _helm_template(
    name: str, namespace: str, path: Path, values: list[Path]
) -> list[dict[str, Any]]:
    args = [HELM_BIN, "template", name, str(path), "--namespace", namespace]
    for values_file in values:
        args.extend(["--values", str(values_file)])
    out = await command.run(command.Command(args, exc=HelmException))
    return parse_objects(out, f"helm template {command.format_path(path)}")


async def _kustomize_build(path: Path) -> list[dict[str, Any]]:
    args = [KUSTOMIZE_BIN, "build"]
    cwd: Path | None = None
    if path.is_absolute():
        args.append(".")
        cwd = path
    else:
        args.append(str(path))
    out = await command.run(command.Command(args, cwd=cwd, exc=KustomizeException))
    return parse_objects(out, f"kustomize build {command.format_path(path)}")


async def _is_kustomization(path: Path) -> bool:
    for filename in KUSTOMIZATION_FILES:
        if await exists(path / filename):
            return True
    return False


def set_default_namespace(objects: list[dict[str, Any]], namespace: str) -> None:
    """Set the namespace of namespaced objects that don't specify one."""
    for obj in objects:
        if obj.get("kind") in CLUSTER_SCOPED_KINDS:
            continue
        metadata = obj.setdefault("metadata", {})
        if not metadata.get("namespace"):
            metadata["namespace"] = namespace


async def build_objects(
    name: str,
    namespace: str,
    path: Path,
    values: list[Path] | None = None,
) -> list[dict[str, Any]]:
    """Build the desired objects of the module at `path`.

    Values files only apply to Helm charts and are merged in the order given.
    """
    values = values or []
    if await isfile(path):
        objects = await _read_manifest(path)
    elif not await isdir(path):
        raise InputException(f"Module path is not a directory: {path}")
    elif await exists(path / HELM_CHART):
        _LOGGER.debug("Rendering helm chart %s", path)
        objects = await _helm_template(name, namespace, path, values)
    elif await _is_kustomization(path):
        _LOGGER.debug("Building kustomization %s", path)
        objects = await _kustomize_build(path)
    else:
        objects = []
        for manifest_path in sorted(path.iterdir()):
            if manifest_path.suffix in MANIFEST_SUFFIXES:
                objects.extend(await _read_manifest(manifest_path))
    if values and not await exists(path / HELM_CHART):
        _LOGGER.warning("Ignoring values files for module without a helm chart")
    set_default_namespace(objects, namespace)
    _LOGGER.info("Built %d object(s) from %s", len(objects), command.format_path(path))
    return objects
