"""Filesystem formatting for the fixed partition layout.

Supported Filesystems:
    ext4:   var-A, var-B and home
    vfat:   ESP, EFI-A and EFI-B

The home partition gets casefold support, the "huge" usage type (few inodes,
large files) and no reserved blocks. The partition is tiny in the image and
grows to fill the disk on first boot, so the inode ratio must be explicit.

Example:
    >>> from steamos_repair.storage.format import format_ext4
    >>> format_ext4("var", "/dev/nvme0n1p6")
"""

from __future__ import annotations

from steamos_repair.logging import LoggerFactory

from .commands import run_checked_command
from .exceptions import CommandError, FormatOperationError


log = LoggerFactory.for_storage()


def _require(label: str, device: str) -> None:
    if not label or not device:
        raise ValueError(f"Label and device are required (label={label!r}, device={device!r})")


def _run_format(command: list[str], device: str) -> None:
    try:
        run_checked_command(command)
    except CommandError as error:
        raise FormatOperationError(f"Failed to format {device}: {error}", device=device) from error


def format_ext4(label: str, device: str) -> None:
    """Format `device` as ext4 with filesystem label `label`."""
    _require(label, device)
    log.debug(f"Formatting {device} as ext4 (label {label})")
    _run_format(["mkfs.ext4", "-F", "-L", label, device], device)


def format_vfat(label: str, device: str) -> None:
    """Format `device` as FAT with volume label `label`."""
    _require(label, device)
    log.debug(f"Formatting {device} as vfat (label {label})")
    _run_format(["mkfs.vfat", f"-n{label}", device], device)


def format_home(device: str, label: str = "home") -> None:
    """Format the home partition and strip its reserved blocks."""
    _require(label, device)
    log.info(f"Creating home partition on {device}")
    _run_format(["mkfs.ext4", "-F", "-O", "casefold", "-T", "huge", "-L", label, device], device)
    log.info("Removing the reserved blocks on the home partition")
    _run_format(["tune2fs", "-m", "0", device], device)
