"""Tests for block/sector arithmetic and split planning."""

import pytest

from lvm_provisioner.domain import sizing
from lvm_provisioner.domain.models import PartitionGeometry


class TestMinBlocks:
    """Tests for min_blocks()."""

    def test_five_gib_in_4k_blocks(self):
        assert sizing.min_blocks(4096) == 1_310_720

    def test_rounds_up_when_block_size_does_not_divide(self):
        # 5 GiB / 3000 bytes is not an integer
        blocks = sizing.min_blocks(3000)
        assert blocks * 3000 >= 5 * 1024**3
        assert (blocks - 1) * 3000 < 5 * 1024**3

    def test_rejects_zero_block_size(self):
        with pytest.raises(ValueError):
            sizing.min_blocks(0)


class TestTargetBlocks:
    """Tests for target_blocks()."""

    def test_scenario_floor_wins(self):
        """1,000,000 used 4K blocks -> 1,200,000 padded, floor 1,310,720 wins."""
        assert sizing.target_blocks(1_000_000, 4096) == 1_310_720

    def test_padding_wins_above_floor(self):
        assert sizing.target_blocks(2_000_000, 4096) == 2_400_000

    def test_padding_truncates(self):
        # 3_000_001 // 5 == 600_000
        assert sizing.target_blocks(3_000_001, 4096) == 3_600_001

    @pytest.mark.parametrize(
        "used,block_size",
        [(0, 1024), (1, 4096), (999_999, 1024), (5_242_880, 1024), (7_777_777, 4096)],
    )
    def test_matches_formula(self, used, block_size):
        expected = max(used + used // 5, -(-(5 * 1024**3) // block_size))
        result = sizing.target_blocks(used, block_size)
        assert result == expected
        assert result >= max(used, sizing.min_blocks(block_size))

    def test_custom_floor_and_divisor(self):
        assert sizing.target_blocks(100, 1024, floor_bytes=1024, growth_divisor=10) == 110

    def test_rejects_negative_used(self):
        with pytest.raises(ValueError):
            sizing.target_blocks(-1, 4096)


class TestBlocksToSectors:
    """Tests for blocks_to_sectors()."""

    def test_4k_blocks_to_512_sectors(self):
        assert sizing.blocks_to_sectors(1_310_720, 4096, 512) == 10_485_760

    def test_4k_blocks_to_4k_sectors(self):
        assert sizing.blocks_to_sectors(1_310_720, 4096, 4096) == 1_310_720

    @pytest.mark.parametrize(
        "blocks,block_size,sector_size",
        [(1_310_721, 1024, 4096), (3, 1024, 4096), (1_000_003, 2048, 4096)],
    )
    def test_truncation_never_over_allocates(self, blocks, block_size, sector_size):
        sectors = sizing.blocks_to_sectors(blocks, block_size, sector_size)
        assert sectors == blocks * block_size // sector_size
        assert sectors * sector_size <= blocks * block_size


class TestPlanSplit:
    """Tests for plan_split()."""

    def test_scenario_five_gib_root(self):
        original = PartitionGeometry(number=1, start=2048, end=20971519)

        split = sizing.plan_split(original, 10_485_760)

        assert (split.root.start, split.root.end) == (2048, 10487807)
        assert (split.data.start, split.data.end) == (10487808, 20971519)
        assert split.root.number == 1
        assert split.data.number == 2

    @pytest.mark.parametrize(
        "start,end,target",
        [(2048, 20971519, 1), (2048, 20971519, 20969471), (1, 100, 50), (34, 4_194_270, 2_097_152)],
    )
    def test_partitions_are_contiguous_and_cover_original(self, start, end, target):
        original = PartitionGeometry(number=1, start=start, end=end)

        split = sizing.plan_split(original, target)

        assert split.root.end + 1 == split.data.start
        assert split.data.end == original.end
        assert split.root.length + split.data.length == original.length
        assert split.root.length == target

    def test_rejects_target_filling_partition(self):
        original = PartitionGeometry(number=1, start=2048, end=4095)
        with pytest.raises(ValueError, match="no room"):
            sizing.plan_split(original, original.length)

    def test_rejects_non_positive_target(self):
        original = PartitionGeometry(number=1, start=2048, end=4095)
        with pytest.raises(ValueError):
            sizing.plan_split(original, 0)
