"""Block device enumeration, partition name parsing and device polling.

Enumeration:
    ``/proc/partitions`` lists every block device the kernel knows about.
    Memory-backed devices (loop, ram, zram) are excluded, and so are whole
    disks when sysfs can tell them apart from partitions.

Name Parsing:
    Kernel partition names follow one rule: the partition number is appended
    to the disk name, with a ``p`` separator when the disk name itself ends
    in a digit::

        sda     + 1 -> sda1
        xvda    + 15 -> xvda15
        nvme0n1 + 1 -> nvme0n1p1
        mmcblk0 + 2 -> mmcblk0p2

    ``parse_partition_name`` inverts that rule and raises
    InvalidDeviceNameError for anything it cannot split unambiguously.

Polling:
    After the partition table is re-read, udev may take a moment to create
    the new device node. ``wait_for_block_device`` polls for it with a
    bounded number of attempts and raises DeviceNotReadyError on timeout.
"""

from __future__ import annotations

import os
import re
import time
from pathlib import Path
from typing import Callable

from lvm_provisioner.domain.models import PartitionName
from lvm_provisioner.logging import LoggerFactory

from .exceptions import DeviceNotReadyError, InvalidDeviceNameError


log = LoggerFactory.for_storage()
poll_log = log.bind(tags=["storage", "poll"])

PROC_PARTITIONS = Path("/proc/partitions")
SYS_CLASS_BLOCK = Path("/sys/class/block")

EXCLUDED_PREFIXES = ("loop", "ram", "zram")

_SEPARATED_NAME = re.compile(r"^(?P<disk>[a-z][a-z0-9_-]*\d)p(?P<number>\d+)$")
_PLAIN_NAME = re.compile(r"^(?P<disk>[a-z][a-z0-9_-]*[a-z])(?P<number>\d+)$")
# Disk families whose names always end in a digit; without a ``p`` separator
# these are whole disks, never partitions.
_DIGIT_DISK = re.compile(r"^(nvme\d+n\d+|mmcblk\d+|nbd\d+|md\d+|loop\d+)$")


def read_proc_partitions(path: Path = PROC_PARTITIONS) -> list[str]:
    """Return every device name listed in /proc/partitions, in kernel order."""
    names = []
    with open(path, encoding="utf-8") as f:
        for line in f.readlines()[2:]:  # skip header lines
            words = line.split()
            if len(words) < 4:
                continue
            names.append(words[3])
    return names


def is_memory_backed(name: str) -> bool:
    return name.startswith(EXCLUDED_PREFIXES)


def is_partition(name: str, sys_block: Path = SYS_CLASS_BLOCK) -> bool:
    """True when sysfs marks ``name`` as a partition.

    Without sysfs (containers, tests) every name is assumed to be a partition
    and left for the mount attempt to sort out.
    """
    if not sys_block.is_dir():
        return True
    return (sys_block / name / "partition").exists()


def list_candidate_partitions(
    path: Path = PROC_PARTITIONS, sys_block: Path = SYS_CLASS_BLOCK
) -> list[str]:
    """Partitions that may hold the root filesystem, as /dev paths."""
    candidates = []
    for name in read_proc_partitions(path):
        if is_memory_backed(name):
            continue
        if not is_partition(name, sys_block):
            log.trace(f"Skipping whole disk {name}")
            continue
        candidates.append(f"/dev/{name}")
    log.debug(f"Candidate partitions: {', '.join(candidates) or 'none'}")
    return candidates


def parse_partition_name(name: str) -> PartitionName:
    """Split a partition name or /dev path into disk name and number.

    Raises:
        InvalidDeviceNameError: If the name does not follow the kernel's
            partition naming rule
    """
    base = name[len("/dev/"):] if name.startswith("/dev/") else name
    if not base or "/" in base or _DIGIT_DISK.match(base):
        raise InvalidDeviceNameError(name)

    match = _SEPARATED_NAME.match(base) or _PLAIN_NAME.match(base)
    if not match:
        raise InvalidDeviceNameError(name)

    number = int(match.group("number"))
    if number <= 0:
        raise InvalidDeviceNameError(name)
    return PartitionName(disk=match.group("disk"), number=number)


def wait_for_block_device(
    device_path: str,
    *,
    attempts: int = 60,
    interval: float = 1.0,
    exists: Callable[[str], bool] = os.path.exists,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll until ``device_path`` exists.

    Args:
        device_path: Device node to wait for (e.g., /dev/sda2)
        attempts: Maximum number of checks
        interval: Seconds between checks

    Returns:
        The attempt on which the device was seen (1-based)

    Raises:
        DeviceNotReadyError: If the device is still missing after the last attempt
    """
    started = time.monotonic()
    for attempt in range(1, max(1, attempts) + 1):
        if exists(device_path):
            log.debug(f"{device_path} present after {attempt} attempt(s)")
            return attempt
        poll_log.trace(f"Waiting for {device_path} ({attempt}/{attempts})")
        if attempt < attempts:
            sleep(interval)
    elapsed = time.monotonic() - started
    log.error(f"{device_path} did not appear after {attempts} attempts")
    raise DeviceNotReadyError(device_path, max(1, attempts), elapsed)
