"""Tests for repair/orchestrator.py - plan execution."""

from unittest.mock import Mock, call

import pytest

from steamos_repair.domain.models import PartitionSet, Target
from steamos_repair.repair.cleanup import ExitGuard
from steamos_repair.repair.orchestrator import (
    RepairContext,
    execute_plan,
    resolve_source_root,
)
from steamos_repair.repair.plan import build_plan
from steamos_repair.storage.exceptions import (
    FormatOperationError,
    ImagingError,
    PartitionTypeMismatchError,
    SourceRootNotFoundError,
)


HANDLER_NAMES = [
    "sanitize_all",
    "write_partition_table",
    "verify_partition",
    "format_ext4",
    "format_vfat",
    "format_home",
    "stage_bios",
    "stage_controller",
    "resolve_source_root",
    "freeze_filesystem",
    "image_root",
    "finalize_part",
    "install_bootloader",
    "enter_chroot",
]


@pytest.fixture
def operations(mocker):
    """Patch every side-effecting operation and attach it to one manager mock."""
    manager = Mock()
    for name in HANDLER_NAMES:
        mock = mocker.patch(f"steamos_repair.repair.orchestrator.{name}")
        manager.attach_mock(mock, name)
    manager.resolve_source_root.return_value = "/dev/sda2"
    manager.image_root.side_effect = ["uuid-a", "uuid-b"]
    return manager


def _run(target, config):
    guard = ExitGuard()
    context = RepairContext(config=config, guard=guard)
    return execute_plan(build_plan(target), context), guard


class TestExecutePlan:
    """Tests for execute_plan()."""

    def test_home_sequence(self, operations, repair_config):
        _run(Target.HOME, repair_config)

        assert [c[0] for c in operations.mock_calls] == [
            *["verify_partition"] * 6,
            "format_ext4",
            "format_ext4",
            "format_home",
        ]
        assert operations.mock_calls[-3:] == [
            call.format_ext4("var", "/dev/nvme0n1p6"),
            call.format_ext4("var", "/dev/nvme0n1p7"),
            call.format_home("/dev/nvme0n1p8", label="home"),
        ]

    def test_home_verifies_with_config_switch(self, operations, repair_config):
        _run(Target.HOME, repair_config)

        assert operations.mock_calls[0] == call.verify_partition(
            "/dev/nvme0n1p1", "vfat", "esp", enabled=True
        )

    def test_all_sequence(self, operations, repair_config):
        context, guard = _run(Target.ALL, repair_config)

        assert [c[0] for c in operations.mock_calls] == [
            "sanitize_all",
            "write_partition_table",
            "format_ext4",
            "format_ext4",
            "format_vfat",
            "format_vfat",
            "format_vfat",
            "format_home",
            "stage_bios",
            "stage_controller",
            "resolve_source_root",
            "freeze_filesystem",
            "image_root",
            "image_root",
            "finalize_part",
            "finalize_part",
            "install_bootloader",
        ]
        assert operations.sanitize_all.call_args == call("/dev/nvme0n1")
        assert operations.format_vfat.call_args_list == [
            call("esp", "/dev/nvme0n1p1"),
            call("efi", "/dev/nvme0n1p2"),
            call("efi", "/dev/nvme0n1p3"),
        ]
        assert operations.stage_bios.call_args == call(repair_config, guard)
        assert context.slot_uuids == {PartitionSet.A: "uuid-a", PartitionSet.B: "uuid-b"}

    def test_same_source_for_both_slots(self, operations, repair_config):
        _run(Target.SYSTEM, repair_config)

        assert operations.image_root.call_args_list == [
            call("/dev/sda2", "/dev/nvme0n1p4", known_uuids=()),
            call("/dev/sda2", "/dev/nvme0n1p5", known_uuids=("uuid-a",)),
        ]
        assert operations.freeze_filesystem.call_args[0][1] == "/"

    def test_finalize_order(self, operations, repair_config):
        _run(Target.SYSTEM, repair_config)

        assert operations.finalize_part.call_args_list == [
            call(repair_config, PartitionSet.A),
            call(repair_config, PartitionSet.B),
        ]

    def test_verification_failure_stops_before_mutation(self, operations, repair_config):
        operations.verify_partition.side_effect = PartitionTypeMismatchError(
            "/dev/nvme0n1p1", "ext4", "vfat"
        )

        with pytest.raises(PartitionTypeMismatchError):
            _run(Target.SYSTEM, repair_config)

        assert [c[0] for c in operations.mock_calls] == ["verify_partition"]

    def test_failure_stops_later_steps(self, operations, repair_config):
        operations.format_home.side_effect = FormatOperationError("mkfs failed")

        with pytest.raises(FormatOperationError):
            _run(Target.ALL, repair_config)

        operations.stage_bios.assert_not_called()
        operations.image_root.assert_not_called()

    def test_chroot(self, operations, repair_config):
        operations.enter_chroot.return_value = 5

        context, _guard = _run(Target.CHROOT, repair_config)

        assert context.chroot_status == 5
        assert [c[0] for c in operations.mock_calls] == ["enter_chroot"]

    def test_operations_are_logged_with_timing(self, operations, repair_config, log_records):
        _run(Target.SANITIZE, repair_config)

        assert "Sanitize started" in [r["message"] for r in log_records]
        assert "Sanitize completed" in [r["message"] for r in log_records]


class TestResolveSourceRoot:
    """Tests for resolve_source_root()."""

    def test_resolves_existing_device(self, repair_config, fake_commands, tmp_path):
        device = tmp_path / "sda2"
        device.write_text("")
        fake_commands.respond("findmnt", stdout=f"{device}\n")

        assert resolve_source_root(repair_config) == str(device)
        assert fake_commands.commands == [["findmnt", "-n", "-o", "source", "/"]]

    def test_empty_output(self, repair_config, fake_commands):
        with pytest.raises(SourceRootNotFoundError):
            resolve_source_root(repair_config)

    def test_missing_device(self, repair_config, fake_commands, tmp_path):
        fake_commands.respond("findmnt", stdout=f"{tmp_path / 'gone'}\n")

        with pytest.raises(SourceRootNotFoundError):
            resolve_source_root(repair_config)

    def test_findmnt_failure(self, repair_config, fake_commands):
        fake_commands.fail("findmnt")

        with pytest.raises(SourceRootNotFoundError):
            resolve_source_root(repair_config)


class TestFreezeLifecycle:
    """Freeze handling across a real imaging run against fake tools."""

    @pytest.fixture
    def system_commands(self, fake_commands, tmp_path):
        source = tmp_path / "sda2"
        source.write_text("")
        fake_commands.respond("findmnt", stdout=f"{source}\n")
        fake_commands.respond("blockdev", stdout="5368709120\n")
        fake_commands.respond_blkid(str(source), "UUID", "source-uuid")
        fake_commands.respond_blkid("/dev/nvme0n1p4", "UUID", "uuid-a")
        fake_commands.respond_blkid("/dev/nvme0n1p5", "UUID", "uuid-b")
        for device, fstype, label in [
            ("/dev/nvme0n1p1", "vfat", "esp"),
            ("/dev/nvme0n1p2", "vfat", "efi-A"),
            ("/dev/nvme0n1p3", "vfat", "efi-B"),
            ("/dev/nvme0n1p6", "ext4", "var-A"),
            ("/dev/nvme0n1p7", "ext4", "var-B"),
            ("/dev/nvme0n1p8", "ext4", "home"),
        ]:
            fake_commands.respond_blkid(device, "TYPE", fstype)
            fake_commands.respond_blkid(device, "PARTLABEL", label)
        return fake_commands

    def test_freeze_precedes_imaging_and_outlives_it(self, system_commands, repair_config):
        context, guard = _run(Target.SYSTEM, repair_config)

        freeze = system_commands.index_of("fsfreeze", "-f", "/")
        first_dd = system_commands.index_of("dd")
        assert freeze < first_dd
        assert system_commands.find("fsfreeze", "-u") == []

        guard.drain()

        assert system_commands.find("fsfreeze", "-u") == [["fsfreeze", "-u", "/"]]
        assert context.freeze_handle.released

    def test_slot_b_failure_thaws_exactly_once(self, system_commands, repair_config):
        system_commands.fail("btrfs", "check", "/dev/nvme0n1p5")
        guard = ExitGuard()

        with pytest.raises(ImagingError):
            with guard:
                execute_plan(
                    build_plan(Target.SYSTEM),
                    RepairContext(config=repair_config, guard=guard),
                )
        guard.drain()

        assert system_commands.find("fsfreeze", "-u") == [["fsfreeze", "-u", "/"]]
        assert system_commands.find("steamos-chroot") == []

    def test_duplicate_slot_uuid_is_rejected(self, system_commands, repair_config):
        system_commands.respond_blkid("/dev/nvme0n1p5", "UUID", "uuid-a")

        with pytest.raises(ImagingError, match="not unique"):
            _run(Target.SYSTEM, repair_config)
