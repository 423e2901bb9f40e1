"""Tests for the subprocess helpers."""

import sys

import pytest

from bluegreen.errors import MissingToolError
from bluegreen.provisioning.shell import require_tool, run_shell_cmd


async def test_run_shell_cmd_captures_output():
    rc, stdout, stderr = await run_shell_cmd([sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"])
    assert rc == 0
    assert stdout.strip() == "out"
    assert stderr.strip() == "err"


async def test_run_shell_cmd_nonzero_exit():
    rc, _, _ = await run_shell_cmd([sys.executable, "-c", "raise SystemExit(3)"])
    assert rc == 3


async def test_run_shell_cmd_dry_run(caplog):
    with caplog.at_level("INFO"):
        rc, stdout, stderr = await run_shell_cmd(["oci", "lb", "backend", "list"], dry_run=True)
    assert (rc, stdout, stderr) == (0, "", "")
    assert "[dry-run] oci lb backend list" in caplog.text


async def test_run_shell_cmd_missing_binary():
    rc, _, stderr = await run_shell_cmd(["definitely-not-a-real-binary-xyz"])
    assert rc == 127
    assert "not found" in stderr


async def test_run_shell_cmd_timeout():
    rc, _, stderr = await run_shell_cmd([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.5)
    assert rc == 124
    assert "timed out" in stderr


def test_require_tool():
    assert require_tool(sys.executable)
    with pytest.raises(MissingToolError):
        require_tool("definitely-not-a-real-binary-xyz")
