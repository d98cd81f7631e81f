"""Partition table reading and the root/data split.

This module handles partition table manipulation including:
- Reading the table in sectors with ``parted -m`` (machine readable)
- Planning the split of the root partition into root + data
- Deleting and recreating partitions at exact sector boundaries
- Asking the kernel to re-read the table

parted machine output looks like::

    BYT;
    /dev/sda:41943040s:scsi:512:512:msdos:QEMU HARDDISK:;
    1:2048s:41943039s:41940992s:ext4::boot;

The disk line carries the disk size and the logical sector size; each
partition line carries number, start, end, size, filesystem, name and flags.
"""
from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from typing import Optional

from lvm_provisioner.domain import sizing
from lvm_provisioner.domain.models import PartitionGeometry, PartitionSplit
from lvm_provisioner.logging import LoggerFactory

from .commands import run_checked_command, run_command
from .exceptions import CommandFailedError, InvalidSplitError, PartitionError


log = LoggerFactory.for_storage()


@dataclass(frozen=True)
class PartitionEntry:
    """A partition line from parted, with the attributes worth preserving."""

    geometry: PartitionGeometry
    name: str = ""  # GPT partition name, empty on msdos
    flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PartitionTable:
    disk: str
    size_sectors: int
    logical_sector_size: int
    label: str  # "msdos", "gpt", ...
    entries: dict[int, PartitionEntry] = field(default_factory=dict)


def _sectors(value: str) -> int:
    return int(value.rstrip("s"))


def parse_parted_machine_output(disk: str, output: str) -> PartitionTable:
    """Parse ``parted -m -s <disk> unit s print``.

    Raises:
        PartitionError: If the disk line is missing or malformed
    """
    lines = [line.strip().rstrip(";") for line in output.splitlines() if line.strip()]
    disk_fields = None
    entries: dict[int, PartitionEntry] = {}
    for line in lines:
        if line in ("BYT", "CHS", "CYL"):
            continue
        fields = line.split(":")
        if disk_fields is None and fields[0].startswith("/"):
            disk_fields = fields
            continue
        if not fields[0].isdigit():
            continue
        try:
            geometry = PartitionGeometry(
                number=int(fields[0]), start=_sectors(fields[1]), end=_sectors(fields[2])
            )
        except (IndexError, ValueError) as e:
            raise PartitionError(f"Malformed parted partition line: {line!r}", disk=disk) from e
        flags = ()
        if len(fields) > 6 and fields[6]:
            flags = tuple(flag.strip() for flag in fields[6].split(",") if flag.strip())
        entries[geometry.number] = PartitionEntry(
            geometry=geometry,
            name=fields[5] if len(fields) > 5 else "",
            flags=flags,
        )

    if disk_fields is None or len(disk_fields) < 6:
        raise PartitionError(f"parted printed no disk line for {disk}", disk=disk)
    try:
        return PartitionTable(
            disk=disk,
            size_sectors=_sectors(disk_fields[1]),
            logical_sector_size=int(disk_fields[3]),
            label=disk_fields[5],
            entries=entries,
        )
    except ValueError as e:
        raise PartitionError(f"Malformed parted disk line for {disk}", disk=disk) from e


def read_partition_table(disk: str) -> PartitionTable:
    try:
        output = run_checked_command(["parted", "-m", "-s", disk, "unit", "s", "print"])
    except CommandFailedError as e:
        raise PartitionError(f"Cannot read partition table of {disk}: {e.stderr.strip()}", disk=disk) from e
    return parse_parted_machine_output(disk, output)


def get_sector_size(disk: str) -> int:
    """Logical sector size as reported by the partition table tool."""
    return read_partition_table(disk).logical_sector_size


def plan_split(table: PartitionTable, number: int, target_sectors: int) -> PartitionSplit:
    """Plan the root/data split of partition ``number``.

    Raises:
        PartitionError: If the partition is missing, runs past the end of the
            disk, or the data partition number is already taken
        InvalidSplitError: If the target leaves no room for a data partition
    """
    entry = table.entries.get(number)
    if entry is None:
        raise PartitionError(f"Partition {number} not found on {table.disk}", disk=table.disk)
    if number + 1 in table.entries:
        raise PartitionError(
            f"Partition {number + 1} already exists on {table.disk}; "
            "expected a single-partition layout",
            disk=table.disk,
        )
    if entry.geometry.end >= table.size_sectors:
        raise PartitionError(
            f"Partition {number} ends at sector {entry.geometry.end}, beyond the "
            f"{table.size_sectors}-sector disk {table.disk}",
            disk=table.disk,
        )
    try:
        return sizing.plan_split(entry.geometry, target_sectors)
    except ValueError as e:
        raise InvalidSplitError(str(e), disk=table.disk) from e


def _parted(disk: str, *args: str) -> None:
    command = ["parted", "-s", "-a", "none", disk, "unit", "s", *args]
    try:
        run_command(command)
    except CommandFailedError as e:
        raise PartitionError(
            f"parted {' '.join(args)} on {disk} failed: {e.stderr.strip()}", disk=disk
        ) from e


def get_partition_uuid(disk: str, number: int) -> Optional[str]:
    """GPT partition UUID via sfdisk, or None when unavailable."""
    result = run_command(["sfdisk", "--part-uuid", disk, str(number)], check=False)
    if result.returncode != 0:
        return None
    value = result.stdout.strip()
    return value or None


def set_partition_uuid(disk: str, number: int, uuid: str) -> None:
    try:
        run_command(["sfdisk", "--part-uuid", disk, str(number), uuid])
    except CommandFailedError as e:
        raise PartitionError(
            f"Cannot restore PARTUUID {uuid} on {disk} partition {number}: {e.stderr.strip()}",
            disk=disk,
        ) from e


def apply_split(table: PartitionTable, split: PartitionSplit) -> None:
    """Delete the root partition and recreate it plus the data partition.

    The root partition keeps its number, start sector, flags and (on GPT)
    its name and PARTUUID, so the boot loader and fstab still find it.
    """
    disk = table.disk
    entry = table.entries[split.root.number]
    part_uuid = get_partition_uuid(disk, split.root.number) if table.label == "gpt" else None

    log.info(
        f"Rewriting {disk}: partition {split.root.number} "
        f"{split.original.start}-{split.original.end} -> "
        f"{split.root.start}-{split.root.end}, "
        f"partition {split.data.number} {split.data.start}-{split.data.end}"
    )
    _parted(disk, "rm", str(split.root.number))
    root_name = entry.name if table.label == "gpt" and entry.name else "primary"
    _parted(disk, "mkpart", root_name, f"{split.root.start}s", f"{split.root.end}s")
    for flag in entry.flags:
        _parted(disk, "set", str(split.root.number), flag, "on")
    if part_uuid:
        set_partition_uuid(disk, split.root.number, part_uuid)
    _parted(disk, "mkpart", "primary", f"{split.data.start}s", f"{split.data.end}s")
    _parted(disk, "set", str(split.data.number), "lvm", "on")


def reread_partition_table(disk: str) -> None:
    """Force kernel to re-read partition table."""
    partprobe = shutil.which("partprobe")
    if partprobe:
        try:
            run_command([partprobe, disk])
            return
        except CommandFailedError as e:
            log.warning(f"partprobe {disk} failed, trying blockdev: {e.stderr.strip()}")
    try:
        run_command(["blockdev", "--rereadpt", disk])
    except CommandFailedError as e:
        raise PartitionError(
            f"Kernel did not re-read partition table of {disk}: {e.stderr.strip()}", disk=disk
        ) from e


def settle_udev() -> None:
    """Wait for udev to settle."""
    udevadm = shutil.which("udevadm")
    if udevadm:
        run_command([udevadm, "settle"], check=False)
