"""ext filesystem queries, forced check and shrink.

Operations:
    - read_superblock(): Parse ``tune2fs -l`` into a dict
    - get_block_size(): Filesystem block size in bytes
    - get_used_blocks(): Blocks in use, measured in that block size via df
    - check_filesystem(): Forced ``e2fsck -f -y``
    - resize_filesystem(): ``resize2fs`` to an exact block count

resize2fs refuses to shrink a filesystem that has not been checked since it
was last mounted, so check_filesystem must run first.
"""

from __future__ import annotations

from lvm_provisioner.logging import LoggerFactory

from .commands import run_checked_command, run_command
from .exceptions import (
    CommandFailedError,
    FilesystemCheckError,
    FilesystemError,
    FilesystemResizeError,
)


log = LoggerFactory.for_storage()

# e2fsck exit status bits: 1 = errors corrected, 2 = reboot advised,
# 4 = errors left uncorrected, 8 = operational error, ...
E2FSCK_OK_CODES = (0, 1)


def read_superblock(device: str) -> dict[str, str]:
    """Return the ``key: value`` pairs printed by ``tune2fs -l``."""
    try:
        output = run_checked_command(["tune2fs", "-l", device])
    except CommandFailedError as e:
        raise FilesystemError(
            f"Cannot read superblock of {device}: {e.stderr.strip()}", device=device
        ) from e
    fields: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def _int_field(fields: dict[str, str], key: str, device: str) -> int:
    try:
        return int(fields[key])
    except (KeyError, ValueError) as e:
        raise FilesystemError(f"tune2fs reported no usable '{key}' for {device}", device=device) from e


def get_block_size(device: str) -> int:
    return _int_field(read_superblock(device), "Block size", device)


def get_block_count(device: str) -> int:
    return _int_field(read_superblock(device), "Block count", device)


def get_used_blocks(mountpoint: str, block_size: int) -> int:
    """Blocks in use on the filesystem mounted at ``mountpoint``.

    df rounds each value up to whole units of ``block_size``.
    """
    try:
        output = run_checked_command(
            ["df", f"--block-size={block_size}", "--output=used", mountpoint]
        )
    except CommandFailedError as e:
        raise FilesystemError(f"df failed for {mountpoint}: {e.stderr.strip()}") from e
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    try:
        return int(lines[-1])
    except (IndexError, ValueError) as e:
        raise FilesystemError(f"Cannot parse df output for {mountpoint}: {output!r}") from e


def check_filesystem(device: str) -> int:
    """Force a full filesystem check, repairing what can be repaired.

    Returns:
        The e2fsck exit status (0 or 1)

    Raises:
        FilesystemCheckError: If e2fsck reports anything beyond corrected errors
    """
    log.info(f"Checking filesystem on {device}")
    try:
        result = run_command(["e2fsck", "-f", "-y", device], check=False)
    except CommandFailedError as e:
        raise FilesystemCheckError(str(e), device=device) from e
    if result.returncode not in E2FSCK_OK_CODES:
        detail = (result.stderr or result.stdout or "").strip()
        raise FilesystemCheckError(
            f"e2fsck on {device} exited with status {result.returncode}: {detail}",
            device=device,
        )
    if result.returncode == 1:
        log.warning(f"e2fsck corrected errors on {device}")
    return result.returncode


def resize_filesystem(device: str, blocks: int) -> None:
    """Resize the filesystem on ``device`` to exactly ``blocks`` blocks.

    Raises:
        FilesystemResizeError: If resize2fs fails, e.g. the target is smaller
            than the data on the filesystem
    """
    if blocks <= 0:
        raise FilesystemResizeError(f"Refusing to resize {device} to {blocks} blocks", device=device)
    log.info(f"Resizing filesystem on {device} to {blocks} blocks")
    try:
        run_command(["resize2fs", device, str(blocks)])
    except CommandFailedError as e:
        raise FilesystemResizeError(
            f"resize2fs {device} {blocks} failed: {e.stderr.strip()}", device=device
        ) from e
