"""Domain model for the provisioning pipeline.

These objects replace the loose disk/partition/block/sector values that would
otherwise be shared between stages. Discovery returns a DiskProbe, later stages
take it as an argument.
"""

from __future__ import annotations

from dataclasses import dataclass


# ==============================================================================
# Partition Identity
# ==============================================================================


@dataclass(frozen=True)
class PartitionName:
    """A partition identified by its disk and partition number.

    ``disk`` is the kernel name of the whole disk, without ``/dev/``.
    """

    disk: str  # e.g., "sda", "nvme0n1"
    number: int  # e.g., 1

    @property
    def uses_separator(self) -> bool:
        """Disks whose name ends in a digit put ``p`` before the number."""
        return self.disk[-1:].isdigit()

    @property
    def name(self) -> str:
        """Kernel partition name (e.g., sda1, nvme0n1p1)."""
        separator = "p" if self.uses_separator else ""
        return f"{self.disk}{separator}{self.number}"

    @property
    def disk_path(self) -> str:
        """Disk device node (e.g., /dev/sda)."""
        return f"/dev/{self.disk}"

    @property
    def device_path(self) -> str:
        """Partition device node (e.g., /dev/sda1)."""
        return f"/dev/{self.name}"

    def next(self) -> PartitionName:
        """The partition that follows this one on the same disk."""
        return PartitionName(disk=self.disk, number=self.number + 1)

    def __str__(self) -> str:
        return self.name


# ==============================================================================
# Discovery Result
# ==============================================================================


@dataclass(frozen=True)
class DiskProbe:
    """Everything discovery learned about the root partition.

    Sampled once, while the partition was mounted, and threaded through the
    shrink and surgery stages.
    """

    partition: PartitionName
    block_size: int  # filesystem block size in bytes
    used_blocks: int  # blocks in use at discovery time
    target_blocks: int  # used + headroom, floored
    sector_size: int  # logical sector size reported by the partition table
    target_sectors: int  # target_blocks expressed in sectors

    @property
    def target_bytes(self) -> int:
        return self.target_blocks * self.block_size

    def describe(self) -> dict[str, object]:
        """Flat view used for logs and failure diagnostics."""
        return {
            "disk": self.partition.disk_path,
            "partition": self.partition.device_path,
            "block_size": self.block_size,
            "used_blocks": self.used_blocks,
            "target_blocks": self.target_blocks,
            "sector_size": self.sector_size,
            "target_sectors": self.target_sectors,
        }


# ==============================================================================
# Partition Table
# ==============================================================================


@dataclass(frozen=True)
class PartitionGeometry:
    """One partition table entry: an inclusive sector range."""

    number: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class PartitionSplit:
    """The shrunk root partition plus the data partition that takes the rest."""

    original: PartitionGeometry
    root: PartitionGeometry
    data: PartitionGeometry

    def __post_init__(self) -> None:
        if self.root.start != self.original.start:
            raise ValueError("root partition must keep its start sector")
        if self.root.number != self.original.number:
            raise ValueError("root partition must keep its number")
        if self.data.number != self.root.number + 1:
            raise ValueError("data partition must follow the root partition")
        if self.root.end + 1 != self.data.start:
            raise ValueError("partitions must be contiguous")
        if self.data.end != self.original.end:
            raise ValueError("data partition must end where the original ended")
        if self.root.length <= 0 or self.data.length <= 0:
            raise ValueError("both partitions must be non-empty")

    def describe(self) -> dict[str, object]:
        return {
            "original": f"{self.original.start}-{self.original.end}",
            "root": f"{self.root.start}-{self.root.end}",
            "data": f"{self.data.start}-{self.data.end}",
        }


# ==============================================================================
# Run Outcome
# ==============================================================================


@dataclass(frozen=True)
class ProvisionOutcome:
    """What a provisioning run did."""

    volume_group: str
    skipped: bool = False  # volume group already existed
    probe: DiskProbe | None = None
    split: PartitionSplit | None = None
    data_device: str | None = None
    restored: bool = False  # boot-loader config restored, marker removed
    rebooted: bool = False
