"""Plan interpreter.

execute_plan() walks a RepairPlan in order and hands each step to its handler.
Handlers share a RepairContext holding the run configuration, the exit guard
and what earlier steps produced (the resolved source root, the UUIDs already
assigned to root slots). Any exception aborts the run; the caller's exit
guard releases whatever was acquired.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from steamos_repair.boot.finalize import enter_chroot, finalize_part, install_bootloader
from steamos_repair.config.settings import RepairConfig
from steamos_repair.domain.models import PartitionSet
from steamos_repair.firmware.stager import stage_bios, stage_controller
from steamos_repair.logging import LoggerFactory, operation_context
from steamos_repair.storage.commands import run_command
from steamos_repair.storage.erase import sanitize_all
from steamos_repair.storage.exceptions import SourceRootNotFoundError
from steamos_repair.storage.format import format_ext4, format_home, format_vfat
from steamos_repair.storage.imaging import image_root
from steamos_repair.storage.mount import freeze_filesystem
from steamos_repair.storage.partition_table import write_partition_table
from steamos_repair.storage.verification import verify_partition

from .cleanup import CleanupHandle, ExitGuard
from .plan import RepairPlan, Step, StepKind


log = LoggerFactory.for_repair()


@dataclass
class RepairContext:
    config: RepairConfig
    guard: ExitGuard
    source_root: Optional[str] = None
    freeze_handle: Optional[CleanupHandle] = None
    slot_uuids: Dict[PartitionSet, str] = field(default_factory=dict)
    chroot_status: Optional[int] = None


def resolve_source_root(config: RepairConfig) -> str:
    """Block device backing the installer's own root filesystem.

    Raises:
        SourceRootNotFoundError: If findmnt reports nothing or the node is missing
    """
    result = run_command(
        ["findmnt", "-n", "-o", "source", config.source_mountpoint], check=False
    )
    device = result.stdout.strip() if result.returncode == 0 else ""
    if not device or not os.path.exists(device):
        raise SourceRootNotFoundError(device)
    log.info(f"Installer root is {device}")
    return device


def _sanitize(step: Step, context: RepairContext) -> None:
    sanitize_all(context.config.disk.path)


def _write_partition_table(step: Step, context: RepairContext) -> None:
    write_partition_table(context.config.disk, context.config.layout)


def _verify_partition(step: Step, context: RepairContext) -> None:
    config = context.config
    verify_partition(
        config.disk.node(step.role),
        step.fstype,
        step.label,
        enabled=config.verify_partitions,
    )


def _format_ext4(step: Step, context: RepairContext) -> None:
    format_ext4(step.label, context.config.disk.node(step.role))


def _format_vfat(step: Step, context: RepairContext) -> None:
    format_vfat(step.label, context.config.disk.node(step.role))


def _format_home(step: Step, context: RepairContext) -> None:
    format_home(context.config.disk.node(step.role), label=step.label)


def _stage_bios(step: Step, context: RepairContext) -> None:
    stage_bios(context.config, context.guard)


def _stage_controller(step: Step, context: RepairContext) -> None:
    stage_controller(context.config)


def _resolve_source_root(step: Step, context: RepairContext) -> None:
    context.source_root = resolve_source_root(context.config)


def _freeze_source_root(step: Step, context: RepairContext) -> None:
    # Stays frozen until the exit guard drains.
    context.freeze_handle = freeze_filesystem(
        context.guard, context.config.source_mountpoint
    )


def _image_root(step: Step, context: RepairContext) -> None:
    if context.source_root is None:
        raise SourceRootNotFoundError()
    target = context.config.disk.node(step.role)
    log.info(f"Imaging OS partition {step.partset.value}")
    context.slot_uuids[step.partset] = image_root(
        context.source_root,
        target,
        known_uuids=tuple(context.slot_uuids.values()),
    )


def _finalize_boot(step: Step, context: RepairContext) -> None:
    finalize_part(context.config, step.partset)


def _install_bootloader(step: Step, context: RepairContext) -> None:
    install_bootloader(context.config)


def _enter_chroot(step: Step, context: RepairContext) -> None:
    context.chroot_status = enter_chroot(context.config)


HANDLERS: Dict[StepKind, Callable[[Step, RepairContext], None]] = {
    StepKind.SANITIZE: _sanitize,
    StepKind.WRITE_PARTITION_TABLE: _write_partition_table,
    StepKind.VERIFY_PARTITION: _verify_partition,
    StepKind.FORMAT_EXT4: _format_ext4,
    StepKind.FORMAT_VFAT: _format_vfat,
    StepKind.FORMAT_HOME: _format_home,
    StepKind.STAGE_BIOS: _stage_bios,
    StepKind.STAGE_CONTROLLER: _stage_controller,
    StepKind.RESOLVE_SOURCE_ROOT: _resolve_source_root,
    StepKind.FREEZE_SOURCE_ROOT: _freeze_source_root,
    StepKind.IMAGE_ROOT: _image_root,
    StepKind.FINALIZE_BOOT: _finalize_boot,
    StepKind.INSTALL_BOOTLOADER: _install_bootloader,
    StepKind.ENTER_CHROOT: _enter_chroot,
}


def execute_plan(plan: RepairPlan, context: RepairContext) -> RepairContext:
    """Run every step of `plan` in order.

    Returns:
        The context, updated by the steps

    Raises:
        RepairError: From the first failing step; later steps do not run
    """
    log.info(f"Executing {plan.mode.value} plan ({len(plan)} steps)")
    for number, step in enumerate(plan, start=1):
        handler = HANDLERS[step.kind]
        with operation_context(
            step.kind.value, step=number, description=step.describe()
        ):
            handler(step, context)
    return context
