"""The provisioning pipeline.

Stages, in order:

    gate       volume group already present? skip to restore
    discovery  find the marked root partition, measure it, plan the split
    shrink     e2fsck, then resize2fs down to the target block count
    surgery    rewrite the partition table, wait for the data partition node
    lvm        pvcreate + vgcreate on the data partition
    restore    put the boot-loader config back, drop the marker, reboot

Each stage runs inside ``run_stage``: a failure is logged with the values in
effect and re-raised as StageFailedError, which stops the pipeline before the
next destructive step. Discovery plans the split before anything is written,
so a layout that cannot be split is rejected while the disk is still intact.
"""

from __future__ import annotations

import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from lvm_provisioner.config.settings import ProvisionSettings
from lvm_provisioner.domain import sizing
from lvm_provisioner.domain.models import (
    DiskProbe,
    PartitionName,
    PartitionSplit,
    ProvisionOutcome,
)
from lvm_provisioner.logging import LoggerFactory, operation_context
from lvm_provisioner.storage import devices, filesystem, lvm, mount, partition_table
from lvm_provisioner.storage.commands import run_command
from lvm_provisioner.storage.device_lock import provision_lock
from lvm_provisioner.storage.exceptions import (
    FilesystemResizeError,
    InvalidSplitError,
    MarkerNotFoundError,
    MountError,
    MultipleMarkersError,
    ProvisionError,
    RestoreError,
    StageFailedError,
)


log = LoggerFactory.for_system()


@contextmanager
def run_stage(stage: str, context: Optional[Mapping[str, Any]] = None) -> Iterator[Any]:
    """Run one stage, turning any provisioning failure into StageFailedError."""
    context = dict(context or {})
    try:
        with operation_context(stage, **context) as stage_log:
            yield stage_log
    except StageFailedError:
        raise
    except (ProvisionError, ValueError, OSError) as e:
        raise StageFailedError(stage, e, context) from e


# ==============================================================================
# Discovery
# ==============================================================================


def scan_for_marker(
    settings: ProvisionSettings, candidates: Optional[list[str]] = None
) -> list[str]:
    """Mount each candidate partition read-only and test for the marker.

    Every candidate is unmounted before the next one is tried. Scanning stops
    at the first match unless duplicate markers are rejected, in which case
    all candidates are checked. Candidates that do not mount (swap, BIOS boot
    partitions) are skipped.

    Returns:
        Device paths carrying the marker, in scan order
    """
    scratch = settings.scratch_mount
    if mount.is_mounted(scratch):
        raise MountError(f"Scratch mount point {scratch} is already in use", mountpoint=scratch)

    if candidates is None:
        candidates = devices.list_candidate_partitions()

    matches: list[str] = []
    for device in candidates:
        try:
            mount.mount_partition(device, scratch, options="ro")
        except MountError as e:
            log.debug(f"Skipping {device}: {e}")
            continue
        try:
            found = mount.resolve_in_root(Path(scratch), settings.marker_path).exists()
        finally:
            mount.unmount_partition(scratch)

        if not found:
            continue
        log.info(f"Marker {settings.marker_path} found on {device}")
        matches.append(device)
        if not settings.reject_duplicate_markers:
            break
    return matches


def find_marked_partition(
    settings: ProvisionSettings, candidates: Optional[list[str]] = None
) -> Optional[str]:
    """The single partition carrying the marker, or None.

    Raises:
        MultipleMarkersError: If more than one partition carries it
    """
    matches = scan_for_marker(settings, candidates)
    if len(matches) > 1:
        raise MultipleMarkersError(settings.marker_path, matches)
    return matches[0] if matches else None


def probe_disk(settings: ProvisionSettings) -> DiskProbe:
    """Locate the root partition and compute the shrink target.

    Raises:
        MarkerNotFoundError: If no partition carries the marker
        MultipleMarkersError: If more than one does
    """
    candidates = devices.list_candidate_partitions()
    device = find_marked_partition(settings, candidates)
    if device is None:
        raise MarkerNotFoundError(settings.marker_path, candidates)

    partition = devices.parse_partition_name(device)
    block_size = filesystem.get_block_size(device)
    with mount.mounted(device, settings.scratch_mount, options="ro"):
        used_blocks = filesystem.get_used_blocks(settings.scratch_mount, block_size)

    target_blocks = sizing.target_blocks(
        used_blocks,
        block_size,
        floor_bytes=settings.min_filesystem_bytes,
        growth_divisor=settings.growth_divisor,
    )
    sector_size = partition_table.get_sector_size(partition.disk_path)
    target_sectors = sizing.blocks_to_sectors(target_blocks, block_size, sector_size)

    probe = DiskProbe(
        partition=partition,
        block_size=block_size,
        used_blocks=used_blocks,
        target_blocks=target_blocks,
        sector_size=sector_size,
        target_sectors=target_sectors,
    )
    log.info(
        f"Root partition {partition.device_path}: {used_blocks} of {block_size}-byte "
        f"blocks used, target {target_blocks} blocks / {target_sectors} sectors"
    )
    return probe


def plan_surgery(probe: DiskProbe) -> tuple[partition_table.PartitionTable, PartitionSplit]:
    """Read the partition table and plan the split for ``probe``.

    Raises:
        InvalidSplitError: If the shrunk filesystem does not end on a sector
            boundary, or the target leaves no room for a data partition
    """
    disk = probe.partition.disk_path
    if probe.target_bytes % probe.sector_size:
        raise InvalidSplitError(
            f"Filesystem of {probe.target_blocks} x {probe.block_size}-byte blocks "
            f"does not end on a {probe.sector_size}-byte sector boundary",
            disk=disk,
        )
    table = partition_table.read_partition_table(disk)
    split = partition_table.plan_split(table, probe.partition.number, probe.target_sectors)
    return table, split


# ==============================================================================
# Shrink, Surgery, LVM
# ==============================================================================


def shrink_filesystem(probe: DiskProbe) -> None:
    device = probe.partition.device_path
    current_blocks = filesystem.get_block_count(device)
    if probe.target_blocks >= current_blocks:
        raise FilesystemResizeError(
            f"Target of {probe.target_blocks} blocks does not shrink {device} "
            f"({current_blocks} blocks)",
            device=device,
        )
    filesystem.check_filesystem(device)
    filesystem.resize_filesystem(device, probe.target_blocks)


def apply_surgery(
    probe: DiskProbe,
    table: partition_table.PartitionTable,
    split: PartitionSplit,
    settings: ProvisionSettings,
) -> str:
    """Rewrite the partition table and wait for the data partition.

    Returns:
        Device path of the new data partition
    """
    disk = probe.partition.disk_path
    partition_table.apply_split(table, split)
    partition_table.reread_partition_table(disk)
    partition_table.settle_udev()

    data_device = probe.partition.next().device_path
    devices.wait_for_block_device(
        data_device,
        attempts=settings.device_wait_attempts,
        interval=settings.device_wait_interval,
    )
    return data_device


def provision_lvm(data_device: str, volume_group: str) -> None:
    lvm.create_physical_volume(data_device)
    lvm.create_volume_group(volume_group, data_device)


# ==============================================================================
# Restore & Reboot
# ==============================================================================


def restore_boot_config(device: str, settings: ProvisionSettings) -> None:
    """Put the saved boot-loader config back and remove the marker.

    Raises:
        RestoreError: If the backup copy is missing
    """
    with mount.mounted(device, settings.scratch_mount) as root:
        backup = mount.resolve_in_root(root, settings.grub_backup_path)
        config = mount.resolve_in_root(root, settings.grub_config_path)
        if not backup.is_file():
            raise RestoreError(f"Boot-loader backup {settings.grub_backup_path} missing on {device}")
        shutil.copy2(backup, config)
        log.info(f"Restored {settings.grub_config_path} from {settings.grub_backup_path}")

        marker = mount.resolve_in_root(root, settings.marker_path)
        if marker.exists():
            marker.unlink()
            log.info(f"Removed marker {settings.marker_path}")
        else:
            log.warning(f"Marker {settings.marker_path} already gone on {device}")


def reboot_system() -> None:
    run_command(["sync"], check=False)
    log.info("Rebooting")
    run_command(["reboot"])


def restore_and_reboot(
    settings: ProvisionSettings,
    partition: Optional[PartitionName] = None,
    *,
    reboot: bool = True,
) -> tuple[bool, bool]:
    """Restore the boot config on the root partition and reboot.

    Without a known partition (the gate skipped discovery) the marked
    partition is looked up again. When none is marked, restore already
    happened on an earlier boot and nothing is done.

    Returns:
        (restored, rebooted)
    """
    if partition is not None:
        device = partition.device_path
    else:
        device = find_marked_partition(settings)
        if device is None:
            log.info("No partition carries the marker; nothing to restore")
            return False, False

    restore_boot_config(device, settings)
    if not reboot:
        log.info("Reboot skipped")
        return True, False
    reboot_system()
    return True, True


# ==============================================================================
# Pipeline
# ==============================================================================


def run_provisioning(
    settings: Optional[ProvisionSettings] = None, *, reboot: bool = True
) -> ProvisionOutcome:
    """Run the whole pipeline once.

    Raises:
        ProvisionLockedError: If another run holds the lock
        StageFailedError: If any stage fails
    """
    settings = settings or ProvisionSettings.load()
    vg = settings.volume_group

    with provision_lock(settings.lock_path):
        with run_stage("gate", {"volume_group": vg}) as stage_log:
            exists = lvm.volume_group_exists(vg)
            if exists:
                stage_log.info(f"Volume group {vg} already exists; skipping to restore")

        if exists:
            with run_stage("restore", {"volume_group": vg}):
                restored, rebooted = restore_and_reboot(settings, reboot=reboot)
            return ProvisionOutcome(
                volume_group=vg, skipped=True, restored=restored, rebooted=rebooted
            )

        with run_stage("discovery", {"marker": settings.marker_path}):
            probe = probe_disk(settings)
            table, split = plan_surgery(probe)

        context = {**probe.describe(), **split.describe()}

        with run_stage("shrink", context):
            shrink_filesystem(probe)

        with run_stage("surgery", context):
            data_device = apply_surgery(probe, table, split, settings)

        context["data_device"] = data_device
        with run_stage("lvm", {**context, "volume_group": vg}):
            provision_lvm(data_device, vg)

        with run_stage("restore", {"partition": probe.partition.device_path}):
            restored, rebooted = restore_and_reboot(
                settings, probe.partition, reboot=reboot
            )

    return ProvisionOutcome(
        volume_group=vg,
        probe=probe,
        split=split,
        data_device=data_device,
        restored=restored,
        rebooted=rebooted,
    )
