"""Tests for the kubectl cluster client."""

from typing import Any

import pytest
import yaml

from kube_apply import command
from kube_apply.cluster import KubectlClient
from kube_apply.cluster.kubectl import resource_arg
from kube_apply.config import KubectlOptions, PropagationPolicy
from kube_apply.exceptions import KubectlException
from kube_apply.manifest import ObjectIdentity, Owner
from kube_apply.status import Status

DEPLOYMENT = ObjectIdentity(
    group="apps", version="v1", kind="Deployment", namespace="apps", name="podinfo"
)
NAMESPACE = ObjectIdentity(group="", version="v1", kind="Namespace", name="apps")


class FakeKubectl:
    """Records kubectl invocations and returns canned output."""

    def __init__(self, outputs: list[str]) -> None:
        self.outputs = outputs
        self.cmds: list[list[str]] = []
        self.stdin: list[bytes | None] = []

    async def run(self, cmd: command.Command, stdin: bytes | None = None) -> str:
        assert cmd.exc is KubectlException
        self.cmds.append(cmd.cmd)
        self.stdin.append(stdin)
        return self.outputs.pop(0)


@pytest.fixture
def fake_kubectl(monkeypatch: pytest.MonkeyPatch) -> FakeKubectl:
    fake = FakeKubectl([])
    monkeypatch.setattr(command, "run", fake.run)
    return fake


def test_resource_arg() -> None:
    """Test the resource argument is qualified by version and group."""
    assert resource_arg(DEPLOYMENT) == "Deployment.v1.apps"
    assert resource_arg(NAMESPACE) == "Namespace"


def test_base_args() -> None:
    """Test the connection flags passed to every command."""
    options = KubectlOptions(kubeconfig="/tmp/config", context="kind", request_timeout="10s")
    assert options.base_args == [
        "kubectl",
        "--kubeconfig",
        "/tmp/config",
        "--context",
        "kind",
        "--request-timeout",
        "10s",
    ]
    assert KubectlOptions().base_args == ["kubectl"]


async def test_dry_run_apply(fake_kubectl: FakeKubectl) -> None:
    """Test a dry run reads the live object then applies with server dry run."""
    obj: dict[str, Any] = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "podinfo", "namespace": "apps"},
    }
    fake_kubectl.outputs = ["", yaml.dump({**obj, "spec": {"replicas": 1}})]
    client = KubectlClient()
    live, merged = await client.dry_run_apply(obj, Owner(name="podinfo", namespace="apps"))
    assert live is None
    assert merged["spec"] == {"replicas": 1}
    assert fake_kubectl.cmds == [
        [
            "kubectl",
            "get",
            "Deployment.v1.apps",
            "podinfo",
            "--ignore-not-found",
            "--output=yaml",
            "--namespace",
            "apps",
        ],
        [
            "kubectl",
            "apply",
            "--server-side",
            "--field-manager=kube-apply",
            "--force-conflicts",
            "--output=yaml",
            "--filename=-",
            "--dry-run=server",
        ],
    ]
    assert yaml.safe_load(fake_kubectl.stdin[1]) == obj  # type: ignore[arg-type]


async def test_delete(fake_kubectl: FakeKubectl) -> None:
    """Test the delete command for a cluster scoped object."""
    fake_kubectl.outputs = [""]
    await KubectlClient(KubectlOptions(context="kind")).delete(
        NAMESPACE, PropagationPolicy.FOREGROUND
    )
    assert fake_kubectl.cmds == [
        [
            "kubectl",
            "--context",
            "kind",
            "delete",
            "Namespace",
            "apps",
            "--ignore-not-found",
            "--wait=false",
            "--cascade=foreground",
        ]
    ]


async def test_poll(fake_kubectl: FakeKubectl) -> None:
    """Test polling readiness and absence."""
    fake_kubectl.outputs = [
        yaml.dump({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "apps"}, "status": {"phase": "Active"}}),
        "",
    ]
    client = KubectlClient()
    assert (await client.poll_ready(NAMESPACE)).status == Status.READY
    assert await client.poll_absent(NAMESPACE)


async def test_invalid_output(fake_kubectl: FakeKubectl) -> None:
    """Test output that is not an object is an error."""
    fake_kubectl.outputs = ["- a\n- b\n"]
    with pytest.raises(KubectlException, match="Unexpected kubectl output"):
        await KubectlClient().get(DEPLOYMENT)
