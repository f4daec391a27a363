"""Domain model for the repair tool.

Type-safe, immutable descriptions of the fixed disk layout, the disk itself,
the two partition sets and the operator's intent. Nothing in here touches a
device; everything is resolved before the first destructive call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


# ==============================================================================
# Partition Table Domain
# ==============================================================================

TYPE_ESP = "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"
TYPE_EFI = "EBD0A0A2-B9E5-4433-87C0-68B6B72699C7"
TYPE_ROOT = "4F68BCE3-E8CD-4DB1-96E7-FBCAF984B709"
TYPE_VAR = "4D21B016-B534-45C2-A9FB-5C16E091FD2D"
TYPE_HOME = "933AC7E1-2EB4-4F13-B844-0E14E2AEF915"

PART_SIZE_ESP = 256
PART_SIZE_EFI = 64
PART_SIZE_ROOT = 5120  # Must match the size of the source rootfs build
PART_SIZE_VAR = 256
# Tiny on purpose: the OS grows home to fill the physical disk on first boot.
PART_SIZE_HOME = 100

# 1MiB at the beginning and the end for GPT structures.
GPT_PADDING_MIB = 2


class PartitionRole(Enum):
    """Role of each partition, valued by its index in the table."""

    ESP = 1
    EFI_A = 2
    EFI_B = 3
    ROOT_A = 4
    ROOT_B = 5
    VAR_A = 6
    VAR_B = 7
    HOME = 8

    @property
    def index(self) -> int:
        return self.value


@dataclass(frozen=True)
class PartitionSpec:
    """One entry of the fixed partition table."""

    index: int
    name: str  # GPT partition label, e.g. "rootfs-A"
    size_mib: int
    type_guid: str

    @property
    def role(self) -> PartitionRole:
        return PartitionRole(self.index)


@dataclass(frozen=True)
class PartitionLayout:
    """The ordered 8-partition table plus the declared disk size."""

    partitions: Tuple[PartitionSpec, ...]
    disk_size_mib: int

    def __iter__(self):
        return iter(self.partitions)

    def __len__(self) -> int:
        return len(self.partitions)

    def get(self, role: PartitionRole) -> PartitionSpec:
        for spec in self.partitions:
            if spec.index == role.index:
                return spec
        raise KeyError(role)

    @property
    def used_mib(self) -> int:
        return sum(spec.size_mib for spec in self.partitions) + GPT_PADDING_MIB

    def validate(self) -> None:
        """Check the size invariant and the 1:1 index to role mapping.

        Raises:
            ValueError: If the layout is inconsistent
        """
        indices = [spec.index for spec in self.partitions]
        expected = [role.index for role in PartitionRole]
        if indices != expected:
            raise ValueError(f"Partition indices {indices} do not match roles {expected}")
        if self.used_mib != self.disk_size_mib:
            raise ValueError(
                f"Partition sizes plus padding ({self.used_mib} MiB) do not match "
                f"declared disk size ({self.disk_size_mib} MiB)"
            )

    @classmethod
    def default(cls) -> PartitionLayout:
        partitions = (
            PartitionSpec(1, "esp", PART_SIZE_ESP, TYPE_ESP),
            PartitionSpec(2, "efi-A", PART_SIZE_EFI, TYPE_EFI),
            PartitionSpec(3, "efi-B", PART_SIZE_EFI, TYPE_EFI),
            PartitionSpec(4, "rootfs-A", PART_SIZE_ROOT, TYPE_ROOT),
            PartitionSpec(5, "rootfs-B", PART_SIZE_ROOT, TYPE_ROOT),
            PartitionSpec(6, "var-A", PART_SIZE_VAR, TYPE_VAR),
            PartitionSpec(7, "var-B", PART_SIZE_VAR, TYPE_VAR),
            PartitionSpec(8, "home", PART_SIZE_HOME, TYPE_HOME),
        )
        disk_size = GPT_PADDING_MIB + PART_SIZE_HOME + PART_SIZE_ESP + 2 * (
            PART_SIZE_EFI + PART_SIZE_ROOT + PART_SIZE_VAR
        )
        return cls(partitions=partitions, disk_size_mib=disk_size)


# ==============================================================================
# Disk Domain
# ==============================================================================


@dataclass(frozen=True)
class DiskHandle:
    """The physical target disk.

    sector_size is a hint for table writing only. Most SSD/NVMe devices use
    512-byte logical sectors; since partitions are 1MiB aligned, a table can be
    re-mapped to 4096-byte sectors with `sfdisk -d old | sfdisk new` without
    moving any partition.
    """

    path: str  # e.g., "/dev/nvme0n1"
    partition_suffix: str = "p"
    sector_size: int = 512

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def partition(self, index: int) -> str:
        """Device node of partition `index` (e.g., /dev/nvme0n1p4)."""
        return f"{self.path}{self.partition_suffix}{index}"

    def node(self, role: PartitionRole) -> str:
        return self.partition(role.index)


# ==============================================================================
# Partition Set Domain
# ==============================================================================


class PartitionSet(Enum):
    """One of the two redundant {EFI, root, var} groups."""

    A = "A"
    B = "B"

    @property
    def efi(self) -> PartitionRole:
        return PartitionRole.EFI_A if self is PartitionSet.A else PartitionRole.EFI_B

    @property
    def root(self) -> PartitionRole:
        return PartitionRole.ROOT_A if self is PartitionSet.A else PartitionRole.ROOT_B

    @property
    def var(self) -> PartitionRole:
        return PartitionRole.VAR_A if self is PartitionSet.A else PartitionRole.VAR_B


# ==============================================================================
# Intent Domain
# ==============================================================================


class Target(Enum):
    """Command line target."""

    ALL = "all"
    SYSTEM = "system"
    HOME = "home"
    CHROOT = "chroot"
    SANITIZE = "sanitize"
    HELP = "help"

    @classmethod
    def parse(cls, value: Optional[str]) -> Target:
        """Parse a target name; anything unknown falls back to help."""
        if not value:
            return cls.HELP
        try:
            return cls(value.lower())
        except ValueError:
            return cls.HELP


@dataclass(frozen=True)
class Intent:
    """What the selected target is allowed to rewrite."""

    write_partition_table: bool = False
    write_os: bool = False
    write_home: bool = False

    @property
    def is_partial_repair(self) -> bool:
        return not self.write_partition_table and (self.write_os or self.write_home)

    @classmethod
    def for_target(cls, target: Target) -> Intent:
        if target is Target.ALL:
            return cls(write_partition_table=True, write_os=True, write_home=True)
        if target is Target.SYSTEM:
            return cls(write_os=True)
        if target is Target.HOME:
            return cls(write_home=True)
        return cls()


class RepairMode(Enum):
    """Derived state of a run."""

    FULL_REINSTALL = "full-reinstall"
    SYSTEM_REPAIR = "system-repair"
    HOME_REPAIR = "home-repair"
    SANITIZE_ONLY = "sanitize-only"
    INTERACTIVE_CHROOT = "interactive-chroot"
    NOOP = "noop"

    @classmethod
    def derive(cls, target: Target, intent: Intent) -> RepairMode:
        if target is Target.SANITIZE:
            return cls.SANITIZE_ONLY
        if target is Target.CHROOT:
            return cls.INTERACTIVE_CHROOT
        if intent.write_partition_table:
            return cls.FULL_REINSTALL
        if intent.write_os:
            return cls.SYSTEM_REPAIR
        if intent.write_home:
            return cls.HOME_REPAIR
        return cls.NOOP


# ==============================================================================
# Sanitize Domain
# ==============================================================================


class SanitizeStatus(Enum):
    READY = "ready"
    IN_PROGRESS = "in-progress"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class SanitizeState:
    """Hardware sanitize status as reported by the drive."""

    status: SanitizeStatus
    percent: Optional[int] = None

    @classmethod
    def ready(cls) -> SanitizeState:
        return cls(SanitizeStatus.READY)

    @classmethod
    def in_progress(cls, percent: int) -> SanitizeState:
        return cls(SanitizeStatus.IN_PROGRESS, percent)

    @classmethod
    def unsupported(cls) -> SanitizeState:
        return cls(SanitizeStatus.UNSUPPORTED)
