"""Configuration for a repair run.

The configuration is resolved once at startup from built-in defaults, an
optional JSON settings file and a handful of environment flags, then passed by
reference to every component. It is never mutated during a run.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from steamos_repair.domain.models import DiskHandle, PartitionLayout


SETTINGS_PATH = Path(
    os.environ.get(
        "STEAMOS_REPAIR_SETTINGS_PATH",
        "/etc/steamos-repair/settings.json",
    )
)

DEFAULT_BIOS_TOOL = "/usr/bin/jupiter-biosupdate"
DEFAULT_CONTROLLER_TOOL = "/usr/bin/jupiter-controller-update"

DEFAULT_SETTINGS: dict[str, Any] = {
    "disk": "/dev/nvme0n1",
    "disk_suffix": "p",
    "sector_size": 512,
    "verify_partitions": True,
    # When present, these directories hold a newer tool + payload than the
    # base image and take precedence over the default tools.
    "vendored_bios_dir": "/home/deck/jupiter-bios",
    "vendored_controller_dir": "/home/deck/jupiter-controller-fw",
    "bios_tool": DEFAULT_BIOS_TOOL,
    "controller_tool": DEFAULT_CONTROLLER_TOOL,
    "esp_mountpoint": "/esp",
    "efi_mountpoint": "/boot/efi",
    "source_mountpoint": "/",
}


@dataclass(frozen=True)
class RepairConfig:
    disk: DiskHandle
    layout: PartitionLayout = field(default_factory=PartitionLayout.default)
    verify_partitions: bool = True
    vendored_bios_dir: Optional[Path] = None
    vendored_controller_dir: Optional[Path] = None
    bios_tool: str = DEFAULT_BIOS_TOOL
    controller_tool: str = DEFAULT_CONTROLLER_TOOL
    esp_mountpoint: str = "/esp"
    efi_mountpoint: str = "/boot/efi"
    source_mountpoint: str = "/"
    noprompt: bool = False
    rebootprompt: bool = False
    poweroff: bool = False
    forcebios: bool = False


def load_settings(path: Path = SETTINGS_PATH) -> dict[str, Any]:
    values = dict(DEFAULT_SETTINGS)
    if not path.exists():
        return values
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return values
    if isinstance(data, dict):
        values.update({key: value for key, value in data.items() if key in DEFAULT_SETTINGS})
    return values


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return bool(environ.get(name, ""))


def _optional_path(value: Any) -> Optional[Path]:
    if not value:
        return None
    return Path(value)


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    settings_path: Path = SETTINGS_PATH,
) -> RepairConfig:
    """Build the run configuration.

    Args:
        environ: Environment to read NOPROMPT/REBOOTPROMPT/POWEROFF/FORCEBIOS
            from (defaults to os.environ)
        settings_path: Optional JSON file overriding DEFAULT_SETTINGS

    Raises:
        ValueError: If the partition layout is inconsistent
    """
    if environ is None:
        environ = os.environ
    values = load_settings(settings_path)

    layout = PartitionLayout.default()
    layout.validate()

    return RepairConfig(
        disk=DiskHandle(
            path=str(values["disk"]),
            partition_suffix=str(values["disk_suffix"]),
            sector_size=int(values["sector_size"]),
        ),
        layout=layout,
        verify_partitions=bool(values["verify_partitions"]),
        vendored_bios_dir=_optional_path(values["vendored_bios_dir"]),
        vendored_controller_dir=_optional_path(values["vendored_controller_dir"]),
        bios_tool=str(values["bios_tool"]),
        controller_tool=str(values["controller_tool"]),
        esp_mountpoint=str(values["esp_mountpoint"]),
        efi_mountpoint=str(values["efi_mountpoint"]),
        source_mountpoint=str(values["source_mountpoint"]),
        noprompt=_flag(environ, "NOPROMPT"),
        rebootprompt=_flag(environ, "REBOOTPROMPT"),
        poweroff=_flag(environ, "POWEROFF"),
        forcebios=_flag(environ, "FORCEBIOS"),
    )
