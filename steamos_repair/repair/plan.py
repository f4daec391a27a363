"""Repair plans: the ordered step list derived from a target.

A plan is computed once, before anything touches the disk, and interpreted by
repair.orchestrator.execute_plan. Keeping the sequencing rules here means the
order of operations for each target can be inspected and tested without
running a single command.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from steamos_repair.domain.models import (
    Intent,
    PartitionRole,
    PartitionSet,
    RepairMode,
    Target,
)


class StepKind(Enum):
    SANITIZE = "sanitize"
    WRITE_PARTITION_TABLE = "write-partition-table"
    VERIFY_PARTITION = "verify-partition"
    FORMAT_EXT4 = "format-ext4"
    FORMAT_VFAT = "format-vfat"
    FORMAT_HOME = "format-home"
    STAGE_BIOS = "stage-bios"
    STAGE_CONTROLLER = "stage-controller"
    RESOLVE_SOURCE_ROOT = "resolve-source-root"
    FREEZE_SOURCE_ROOT = "freeze-source-root"
    IMAGE_ROOT = "image-root"
    FINALIZE_BOOT = "finalize-boot"
    INSTALL_BOOTLOADER = "install-bootloader"
    ENTER_CHROOT = "enter-chroot"


@dataclass(frozen=True)
class Step:
    """One operation of a plan.

    role names the partition a step acts on, partset the A/B group; fstype
    and label are the expected values for verification or the labels to
    format with.
    """

    kind: StepKind
    role: Optional[PartitionRole] = None
    partset: Optional[PartitionSet] = None
    fstype: Optional[str] = None
    label: Optional[str] = None

    def describe(self) -> str:
        parts = [self.kind.value]
        if self.role is not None:
            parts.append(self.role.name.lower())
        if self.partset is not None:
            parts.append(f"set-{self.partset.value}")
        return " ".join(parts)


@dataclass(frozen=True)
class RepairPlan:
    target: Target
    intent: Intent
    mode: RepairMode
    steps: Tuple[Step, ...]

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def kinds(self) -> list[StepKind]:
        return [step.kind for step in self.steps]


# Expected (filesystem type, GPT label) of every partition a partial repair
# depends on. Root slots are imaged wholesale and never verified.
VERIFY_EXPECTATIONS: Tuple[Tuple[PartitionRole, str, str], ...] = (
    (PartitionRole.ESP, "vfat", "esp"),
    (PartitionRole.EFI_A, "vfat", "efi-A"),
    (PartitionRole.EFI_B, "vfat", "efi-B"),
    (PartitionRole.VAR_A, "ext4", "var-A"),
    (PartitionRole.VAR_B, "ext4", "var-B"),
    (PartitionRole.HOME, "ext4", "home"),
)

VAR_LABEL = "var"
ESP_LABEL = "esp"
EFI_LABEL = "efi"
HOME_LABEL = "home"

PARTITION_SETS = (PartitionSet.A, PartitionSet.B)


def build_repair_steps(intent: Intent) -> list[Step]:
    """Sequence the partition, format, firmware, imaging and boot steps."""
    steps: list[Step] = []

    if intent.write_partition_table:
        steps.append(Step(StepKind.WRITE_PARTITION_TABLE))
    elif intent.is_partial_repair:
        for role, fstype, label in VERIFY_EXPECTATIONS:
            steps.append(Step(StepKind.VERIFY_PARTITION, role=role, fstype=fstype, label=label))

    if intent.write_os or intent.write_home:
        for partset in PARTITION_SETS:
            steps.append(
                Step(StepKind.FORMAT_EXT4, role=partset.var, partset=partset, label=VAR_LABEL)
            )

    if intent.write_os:
        steps.append(Step(StepKind.FORMAT_VFAT, role=PartitionRole.ESP, label=ESP_LABEL))
        for partset in PARTITION_SETS:
            steps.append(
                Step(StepKind.FORMAT_VFAT, role=partset.efi, partset=partset, label=EFI_LABEL)
            )

    if intent.write_home:
        steps.append(Step(StepKind.FORMAT_HOME, role=PartitionRole.HOME, label=HOME_LABEL))

    if intent.write_os:
        steps.append(Step(StepKind.STAGE_BIOS))
        steps.append(Step(StepKind.STAGE_CONTROLLER))
        steps.append(Step(StepKind.RESOLVE_SOURCE_ROOT))
        steps.append(Step(StepKind.FREEZE_SOURCE_ROOT))
        for partset in PARTITION_SETS:
            steps.append(Step(StepKind.IMAGE_ROOT, role=partset.root, partset=partset))
        for partset in PARTITION_SETS:
            steps.append(Step(StepKind.FINALIZE_BOOT, partset=partset))
        steps.append(Step(StepKind.INSTALL_BOOTLOADER, partset=PartitionSet.A))

    return steps


def build_plan(target: Target) -> RepairPlan:
    """Compute the full plan for `target`.

    Example:
        >>> plan = build_plan(Target.HOME)
        >>> plan.mode
        <RepairMode.HOME_REPAIR: 'home-repair'>
    """
    intent = Intent.for_target(target)
    mode = RepairMode.derive(target, intent)

    if target is Target.SANITIZE:
        steps = [Step(StepKind.SANITIZE)]
    elif target is Target.CHROOT:
        steps = [Step(StepKind.ENTER_CHROOT)]
    elif target is Target.ALL:
        steps = [Step(StepKind.SANITIZE), *build_repair_steps(intent)]
    else:
        steps = build_repair_steps(intent)

    return RepairPlan(target=target, intent=intent, mode=mode, steps=tuple(steps))
