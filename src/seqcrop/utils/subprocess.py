"""Subprocess and external command utilities."""

from __future__ import annotations

import shlex
import subprocess


def pretty_command(cmd: list[str]) -> str:
    """Shell-quoted rendering of a command for logs."""
    return " ".join(shlex.quote(c) for c in cmd)


def run_subprocess(cmd: list[str], *, timeout: int | None = None) -> tuple[int, str]:
    """Run a command to completion and capture its output.

    Args:
        cmd: Command and arguments list
        timeout: Optional timeout in seconds

    Returns:
        Tuple of (return_code, combined stdout and stderr). -1 when the
        command could not be started or timed out.
    """
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return result.returncode, result.stdout + result.stderr
    except subprocess.TimeoutExpired:
        return -1, f"Command timed out after {timeout} seconds"
    except OSError as e:
        return -1, str(e)
