"""Tests for command library."""

from pathlib import Path

import pytest

from kube_apply.command import Command, run
from kube_apply.exceptions import CommandException, KubectlException


async def test_command() -> None:
    """Test stdout parsing of a command."""
    result = await run(Command(["echo", "Hello"]))
    assert result == "Hello\n"


async def test_command_stdin() -> None:
    """Test passing content to a command on stdin."""
    result = await run(Command(["cat"]), stdin=b"kind: ConfigMap\n")
    assert result == "kind: ConfigMap\n"


async def test_failed_command() -> None:
    """Test a failing command."""
    with pytest.raises(CommandException, match="return code 1"):
        await run(Command(["/bin/false"]))


async def test_failed_command_exception_type() -> None:
    """Test the exception type raised for a failing command."""
    with pytest.raises(KubectlException, match="return code 1"):
        await run(Command(["/bin/false"], exc=KubectlException))


async def test_allowed_return_code() -> None:
    """Test a non-zero return code that indicates success."""
    result = await run(Command(["/bin/false"], retcodes=[1]))
    assert result == ""


async def test_command_cwd(tmp_path: Path) -> None:
    """Test running a command in a working directory."""
    (tmp_path / "kustomization.yaml").write_text("resources: []\n")
    result = await run(Command(["ls"], cwd=tmp_path))
    assert result == "kustomization.yaml\n"
