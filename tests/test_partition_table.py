"""Tests for storage/partition_table.py - fixed GPT table writing."""

from unittest.mock import patch

import pytest

from steamos_repair.domain.models import DiskHandle, PartitionLayout
from steamos_repair.storage import partition_table
from steamos_repair.storage.exceptions import CommandError, PartitionTableError


class TestRenderPartitionTable:
    """Tests for render_partition_table()."""

    def test_renders_gpt_script(self):
        """Test the full sfdisk script for the default layout."""
        script = partition_table.render_partition_table(
            DiskHandle(path="/dev/nvme0n1"), PartitionLayout.default()
        )
        lines = script.splitlines()

        assert lines[0] == "label: gpt"
        assert lines[1] == "sector-size: 512"
        assert lines[2] == (
            '/dev/nvme0n1p1: name="esp", size=256MiB, '
            "type=C12A7328-F81F-11D2-BA4B-00A0C93EC93B"
        )
        assert lines[5] == (
            '/dev/nvme0n1p4: name="rootfs-A", size=5120MiB, '
            "type=4F68BCE3-E8CD-4DB1-96E7-FBCAF984B709"
        )
        assert lines[9] == (
            '/dev/nvme0n1p8: name="home", size=100MiB, '
            "type=933AC7E1-2EB4-4F13-B844-0E14E2AEF915"
        )
        assert len(lines) == 10
        assert script.endswith("\n")

    def test_no_start_offsets(self):
        """Test partitions are placed by sfdisk (1MiB aligned, no start=)."""
        script = partition_table.render_partition_table(
            DiskHandle(path="/dev/nvme0n1"), PartitionLayout.default()
        )
        assert "start=" not in script


class TestWritePartitionTable:
    """Tests for write_partition_table()."""

    def test_writes_script_to_sfdisk(self, fake_commands):
        """Test sfdisk is fed the rendered script on stdin."""
        disk = DiskHandle(path="/dev/nvme0n1")
        layout = PartitionLayout.default()

        partition_table.write_partition_table(disk, layout)

        call = fake_commands.calls[0]
        assert call.argv == ["sfdisk", "/dev/nvme0n1"]
        assert call.input == partition_table.render_partition_table(disk, layout)

    @patch("steamos_repair.storage.partition_table.shutil.which", return_value=None)
    def test_missing_sfdisk(self, mock_which):
        """Test a missing sfdisk binary is reported."""
        with pytest.raises(PartitionTableError, match="sfdisk not found"):
            partition_table.write_partition_table(
                DiskHandle(path="/dev/nvme0n1"), PartitionLayout.default()
            )

    def test_sfdisk_failure(self, fake_commands):
        """Test sfdisk failures become PartitionTableError."""
        fake_commands.fail("sfdisk", stderr="Device or resource busy")

        with pytest.raises(PartitionTableError, match="resource busy") as excinfo:
            partition_table.write_partition_table(
                DiskHandle(path="/dev/nvme0n1"), PartitionLayout.default()
            )
        assert isinstance(excinfo.value.__cause__, CommandError)
        assert excinfo.value.device == "/dev/nvme0n1"

    def test_invalid_layout_is_not_written(self, fake_commands):
        """Test an inconsistent layout never reaches sfdisk."""
        layout = PartitionLayout.default()
        broken = PartitionLayout(partitions=layout.partitions, disk_size_mib=1)

        with pytest.raises(ValueError):
            partition_table.write_partition_table(DiskHandle(path="/dev/nvme0n1"), broken)
        assert fake_commands.calls == []
