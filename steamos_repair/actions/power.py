from __future__ import annotations

import shutil
import subprocess

from steamos_repair.logging import LoggerFactory
from steamos_repair.storage.commands import run_command


log = LoggerFactory.for_system()


def run_systemctl_command(args: list[str]) -> subprocess.CompletedProcess[str]:
    """Run systemctl command."""
    if not shutil.which("systemctl"):
        log.warning(f"systemctl command failed: {' '.join(args)} (systemctl missing)")
        return subprocess.CompletedProcess(
            args=["systemctl"], returncode=1, stdout="", stderr="systemctl missing"
        )
    return run_command(["systemctl", *args], check=False)


def reboot_system() -> subprocess.CompletedProcess[str]:
    """Reboot the system."""
    return run_systemctl_command(["reboot"])


def poweroff_system() -> subprocess.CompletedProcess[str]:
    """Power off the system."""
    return run_systemctl_command(["poweroff"])


def perform_power_action(poweroff: bool) -> subprocess.CompletedProcess[str]:
    if poweroff:
        return poweroff_system()
    return reboot_system()
