"""Checked execution of external commands.

Every tool the pipeline shells out to (mount, tune2fs, parted, pvcreate, ...)
goes through ``run_command`` so that a non-zero exit status is never ignored.
"""

from __future__ import annotations

import subprocess
from typing import Sequence

from lvm_provisioner.logging import LoggerFactory

from .exceptions import CommandFailedError


log = LoggerFactory.for_command()
output_log = log.bind(tags=["command", "output"])


def run_command(
    command: Sequence[str],
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command and capture its output.

    Args:
        command: Command and arguments as a list of strings
        check: Raise CommandFailedError on a non-zero exit status

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        CommandFailedError: If check is True and the command fails, or the
            executable does not exist
    """
    command = list(command)
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            text=True,
            capture_output=True,
        )
    except FileNotFoundError as error:
        raise CommandFailedError(command, 127, stderr=str(error)) from error

    if result.stdout:
        output_log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr:
        output_log.debug(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")

    if check and result.returncode != 0:
        log.debug(f"Command failed: {' '.join(command)} (rc={result.returncode})")
        raise CommandFailedError(command, result.returncode, result.stdout, result.stderr)
    return result


def run_checked_command(command: Sequence[str]) -> str:
    """Run a command, raise CommandFailedError if it fails, return stdout."""
    return run_command(command, check=True).stdout
