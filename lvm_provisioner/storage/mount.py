"""Mounting partitions at the scratch mount point.

Functions:
    - validate_device_path(): Reject non-/dev paths and shell metacharacters
    - is_mounted(): Check whether a directory is a mountpoint
    - mount_partition(): Mount a partition (creating the mountpoint)
    - unmount_partition(): Sync and unmount a mountpoint
    - mounted(): Context manager that always unmounts on exit

All commands run through run_command with argument lists; a failing mount or
umount raises MountError.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from lvm_provisioner.logging import LoggerFactory

from .commands import run_command
from .exceptions import CommandFailedError, MountError


log = LoggerFactory.for_storage()

_FORBIDDEN_CHARS = (";", "&", "|", "$", "`", "\n", "\r", " ")


def validate_device_path(device: str) -> None:
    """Raise ValueError unless ``device`` is a plain /dev path."""
    if not isinstance(device, str) or not device.startswith("/dev/"):
        raise ValueError(f"Invalid device path: {device}")
    if any(char in device for char in _FORBIDDEN_CHARS):
        raise ValueError(f"Device path contains invalid characters: {device}")


def is_mounted(mountpoint: str) -> bool:
    return os.path.ismount(mountpoint)


def mount_partition(device: str, mountpoint: str, options: Optional[str] = None) -> None:
    """Mount ``device`` at ``mountpoint``.

    Args:
        device: Device node (e.g., '/dev/sda1')
        mountpoint: Directory to mount on, created if missing
        options: Optional mount options passed with -o

    Raises:
        ValueError: If the device path is invalid
        MountError: If the mountpoint is busy or mount fails
    """
    validate_device_path(device)

    if is_mounted(mountpoint):
        raise MountError(
            f"{mountpoint} is already a mountpoint", device=device, mountpoint=mountpoint
        )

    Path(mountpoint).mkdir(parents=True, exist_ok=True)

    command = ["mount"]
    if options:
        command += ["-o", options]
    command += [device, mountpoint]
    try:
        run_command(command)
    except CommandFailedError as e:
        raise MountError(
            f"Failed to mount {device} at {mountpoint}: {e.stderr.strip()}",
            device=device,
            mountpoint=mountpoint,
        ) from e
    log.debug(f"Mounted {device} at {mountpoint}")


def unmount_partition(mountpoint: str) -> None:
    """Sync and unmount ``mountpoint`` if it is mounted.

    Raises:
        MountError: If umount fails
    """
    if not is_mounted(mountpoint):
        return
    run_command(["sync"], check=False)
    try:
        run_command(["umount", mountpoint])
    except CommandFailedError as e:
        raise MountError(
            f"Failed to unmount {mountpoint}: {e.stderr.strip()}", mountpoint=mountpoint
        ) from e
    log.debug(f"Unmounted {mountpoint}")


@contextmanager
def mounted(device: str, mountpoint: str, options: Optional[str] = None) -> Iterator[Path]:
    """Mount ``device`` for the duration of the block.

    Example:
        with mounted("/dev/sda1", "/mnt/lvm-provisioner") as root:
            (root / "etc/hostname").read_text()
    """
    mount_partition(device, mountpoint, options)
    try:
        yield Path(mountpoint)
    finally:
        unmount_partition(mountpoint)


def resolve_in_root(root: Path, path: str) -> Path:
    """Map an absolute path of the mounted filesystem under ``root``."""
    return root / path.lstrip("/")
