"""Shared command utilities for namespace and HAProxy management."""

from __future__ import annotations

import logging
import subprocess

from .exceptions import NamespaceError

logger = logging.getLogger(__name__)


def run_cmd(cmd: list[str], timeout: int = 30) -> tuple[int, str, str]:
    """Run a command and return (return_code, stdout, stderr).

    A missing binary or a timeout is reported as a non-zero return code so
    callers only have one failure path to handle.
    """
    logger.debug("exec: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
    except FileNotFoundError as exc:
        return 127, "", str(exc)
    except subprocess.TimeoutExpired:
        return 124, "", f"timed out after {timeout}s"
    return result.returncode, result.stdout, result.stderr


def check_cmd(cmd: list[str], timeout: int = 30) -> str:
    """Run a command and raise NamespaceError on failure. Returns stdout."""
    code, stdout, stderr = run_cmd(cmd, timeout=timeout)
    if code != 0:
        raise NamespaceError(
            f"command failed ({code}): {' '.join(cmd)}: {stderr.strip()}",
            cmd=cmd, returncode=code, stderr=stderr,
        )
    return stdout


def ovs_vsctl(*args: str, timeout: int = 30) -> str:
    """Run ovs-vsctl, raising NamespaceError on failure."""
    return check_cmd(["ovs-vsctl", *args], timeout=timeout)


def list_netns(timeout: int = 30) -> set[str]:
    """Return the names of all named network namespaces."""
    stdout = check_cmd(["ip", "netns", "list"], timeout=timeout)
    # Lines look like "name (id: 3)" or just "name"
    return {line.split()[0] for line in stdout.splitlines() if line.strip()}
