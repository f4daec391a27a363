"""BIOS and controller firmware staging.

OOBE images do not update the BIOS or controllers on boot, so a (re)install
stages both. Each tool is chosen once: a vendor-override directory next to the
installer, when present, supplies a newer tool and payload than the base image
and is exported to the tool through its environment variable.

Tool exit status is logged but never fails the run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from steamos_repair.config.settings import RepairConfig
from steamos_repair.domain.models import PartitionRole
from steamos_repair.logging import LoggerFactory
from steamos_repair.repair.cleanup import ExitGuard
from steamos_repair.storage.commands import run_command
from steamos_repair.storage.mount import mount_for_staging


log = LoggerFactory.for_firmware()

BIOS_TOOL_NAME = "jupiter-biosupdate"
BIOS_DIR_ENV = "JUPITER_BIOS_DIR"
CONTROLLER_TOOL_NAME = "jupiter-controller-update"
CONTROLLER_DIR_ENV = "JUPITER_CONTROLLER_UPDATE_FIRMWARE_DIR"
CONTROLLER_OOBE_ENV = "JUPITER_CONTROLLER_UPDATE_IN_OOBE"


@dataclass(frozen=True)
class FirmwareTool:
    kind: str
    tool_path: str
    extra_env: Dict[str, str] = field(default_factory=dict)

    @property
    def vendored(self) -> bool:
        return bool(self.extra_env) and any(
            key != CONTROLLER_OOBE_ENV for key in self.extra_env
        )


def select_firmware_tool(
    kind: str,
    default_tool: str,
    vendored_dir: Optional[Path],
    tool_name: str,
    dir_env: str,
) -> FirmwareTool:
    """Prefer the vendor-override directory, else the default tool."""
    if vendored_dir is not None and os.path.isdir(vendored_dir):
        tool = FirmwareTool(
            kind=kind,
            tool_path=str(Path(vendored_dir) / tool_name),
            extra_env={dir_env: str(vendored_dir)},
        )
        log.info(f"Using vendored {kind} update from {vendored_dir}")
        return tool
    return FirmwareTool(kind=kind, tool_path=default_tool)


def bios_tool(config: RepairConfig) -> FirmwareTool:
    return select_firmware_tool(
        "bios",
        config.bios_tool,
        config.vendored_bios_dir,
        BIOS_TOOL_NAME,
        BIOS_DIR_ENV,
    )


def controller_tool(config: RepairConfig) -> FirmwareTool:
    tool = select_firmware_tool(
        "controller",
        config.controller_tool,
        config.vendored_controller_dir,
        CONTROLLER_TOOL_NAME,
        CONTROLLER_DIR_ENV,
    )
    env = dict(tool.extra_env)
    env[CONTROLLER_OOBE_ENV] = "1"
    return FirmwareTool(kind=tool.kind, tool_path=tool.tool_path, extra_env=env)


def run_firmware_tool(tool: FirmwareTool, *args: str) -> bool:
    """Invoke a firmware tool; returns True on exit status 0."""
    result = run_command([tool.tool_path, *args], check=False, env=tool.extra_env)
    if result.returncode != 0:
        log.warning(
            f"{tool.kind} update tool exited with status {result.returncode}",
            tool=tool.tool_path,
        )
        return False
    return True


def stage_bios(config: RepairConfig, guard: ExitGuard) -> bool:
    """Stage a BIOS update for the next boot of the target disk.

    The tool writes to fixed paths, so the new ESP and EFI-A partitions are
    mounted over the installer's own /esp and /boot/efi for the duration of
    the call, then unmounted straight away.
    """
    log.info("Staging a BIOS update for next boot if necessary")
    tool = bios_tool(config)
    disk = config.disk
    mounts = mount_for_staging(
        guard,
        [
            (disk.node(PartitionRole.ESP), config.esp_mountpoint),
            (disk.node(PartitionRole.EFI_A), config.efi_mountpoint),
        ],
        name="BIOS staging mounts",
    )
    try:
        if config.forcebios:
            ok = run_firmware_tool(tool, "--force")
            if not ok:
                log.warning("Forced BIOS update failed, retrying without --force")
                ok = run_firmware_tool(tool)
        else:
            ok = run_firmware_tool(tool)
    finally:
        mounts.release()
    return ok


def stage_controller(config: RepairConfig) -> bool:
    """Update controller firmware; no retry."""
    log.info("Updating controller firmware if necessary")
    return run_firmware_tool(controller_tool(config))
