"""Block and sector arithmetic for the shrink and split.

Pure integer math, no device access. Division truncates everywhere except the
5 GiB floor, which rounds up so the floor is never undershot.
"""

from __future__ import annotations

from .models import PartitionGeometry, PartitionSplit

GIB = 1024**3
MIN_FILESYSTEM_BYTES = 5 * GIB
GROWTH_DIVISOR = 5  # 20% headroom


def min_blocks(block_size: int, floor_bytes: int = MIN_FILESYSTEM_BYTES) -> int:
    """Number of filesystem blocks needed to cover ``floor_bytes``."""
    if block_size <= 0:
        raise ValueError(f"block size must be positive, got {block_size}")
    return -(-floor_bytes // block_size)


def target_blocks(
    used_blocks: int,
    block_size: int,
    *,
    floor_bytes: int = MIN_FILESYSTEM_BYTES,
    growth_divisor: int = GROWTH_DIVISOR,
) -> int:
    """Used blocks plus headroom, raised to the floor.

    >>> target_blocks(1_000_000, 4096)
    1310720
    """
    if used_blocks < 0:
        raise ValueError(f"used blocks cannot be negative, got {used_blocks}")
    if growth_divisor <= 0:
        raise ValueError(f"growth divisor must be positive, got {growth_divisor}")
    padded = used_blocks + used_blocks // growth_divisor
    return max(padded, min_blocks(block_size, floor_bytes))


def blocks_to_sectors(blocks: int, block_size: int, sector_size: int) -> int:
    """Convert filesystem blocks to disk sectors, truncating."""
    if sector_size <= 0:
        raise ValueError(f"sector size must be positive, got {sector_size}")
    return blocks * block_size // sector_size


def plan_split(original: PartitionGeometry, target_sectors: int) -> PartitionSplit:
    """Split ``original`` into a root partition of ``target_sectors`` and a data partition.

    The two results are contiguous and cover exactly the original range.
    """
    if target_sectors <= 0:
        raise ValueError(f"target sectors must be positive, got {target_sectors}")
    if target_sectors >= original.length:
        raise ValueError(
            f"target of {target_sectors} sectors leaves no room for a data "
            f"partition in {original.length} sectors"
        )
    root = PartitionGeometry(
        number=original.number,
        start=original.start,
        end=original.start + target_sectors - 1,
    )
    data = PartitionGeometry(
        number=original.number + 1,
        start=original.start + target_sectors,
        end=original.end,
    )
    return PartitionSplit(original=original, root=root, data=data)
