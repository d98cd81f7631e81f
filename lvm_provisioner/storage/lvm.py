"""LVM physical volume and volume group helpers."""

from __future__ import annotations

from lvm_provisioner.logging import LoggerFactory

from .commands import run_command
from .exceptions import CommandFailedError, LVMError


log = LoggerFactory.for_lvm()


def volume_group_exists(name: str) -> bool:
    """True when ``vgs`` knows a volume group called ``name``."""
    result = run_command(["vgs", "--noheadings", "-o", "vg_name", name], check=False)
    exists = result.returncode == 0 and name in result.stdout.split()
    log.debug(f"Volume group {name} {'exists' if exists else 'not found'}")
    return exists


def create_physical_volume(device: str) -> None:
    log.info(f"Initializing {device} as a physical volume")
    try:
        run_command(["pvcreate", "-y", device])
    except CommandFailedError as e:
        raise LVMError(f"pvcreate {device} failed: {e.stderr.strip()}", device=device) from e


def create_volume_group(name: str, *devices: str) -> None:
    if not devices:
        raise LVMError(f"Volume group {name} needs at least one physical volume")
    log.info(f"Creating volume group {name} on {', '.join(devices)}")
    try:
        run_command(["vgcreate", name, *devices])
    except CommandFailedError as e:
        raise LVMError(f"vgcreate {name} failed: {e.stderr.strip()}", device=devices[0]) from e
