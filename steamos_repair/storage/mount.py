"""Mounting and freezing with release handles.

Both helpers register their undo action with the exit guard *before* acting,
so a failure halfway through still leaves the host unmounted and thawed.
Each undo action checks its own state and is safe to run twice.
"""

from __future__ import annotations

from typing import Sequence, Tuple

from steamos_repair.logging import LoggerFactory
from steamos_repair.repair.cleanup import CleanupHandle, ExitGuard

from .commands import run_checked_command, run_command
from .exceptions import CommandError, FreezeError, MountError


log = LoggerFactory.for_storage()


def mount_partition(device: str, mountpoint: str) -> None:
    """Mount `device` on `mountpoint`.

    Raises:
        ValueError: If device path is invalid
        MountError: If mount fails
    """
    if not isinstance(device, str) or not device.startswith("/dev/"):
        raise ValueError(f"Invalid partition path: {device}")
    try:
        run_checked_command(["mount", device, mountpoint])
    except CommandError as error:
        raise MountError(f"Failed to mount {device} on {mountpoint}: {error}") from error


def lazy_unmount(mountpoint: str) -> None:
    """Lazily unmount `mountpoint` (umount -l)."""
    try:
        run_checked_command(["umount", "-l", mountpoint])
    except CommandError as error:
        raise MountError(f"Failed to unmount {mountpoint}: {error}") from error


def mount_for_staging(
    guard: ExitGuard,
    mounts: Sequence[Tuple[str, str]],
    name: str = "staging mounts",
) -> CleanupHandle:
    """Mount each (device, mountpoint) pair and return one release handle.

    The handle lazily unmounts every mountpoint that was actually mounted, in
    the order given. A failed unmount does not stop the rest; the failures
    are raised together once every mountpoint has been tried.
    """
    mounted: list[str] = []

    def release() -> None:
        failures = []
        while mounted:
            mountpoint = mounted.pop(0)
            try:
                lazy_unmount(mountpoint)
            except MountError as error:
                failures.append(str(error))
        if failures:
            raise MountError("; ".join(failures))

    handle = guard.register(name, release)
    for device, mountpoint in mounts:
        log.info(f"Mounting {device} on {mountpoint}")
        mount_partition(device, mountpoint)
        mounted.append(mountpoint)
    return handle


def freeze_filesystem(guard: ExitGuard, mountpoint: str = "/") -> CleanupHandle:
    """Freeze the filesystem at `mountpoint` and return the thaw handle.

    Raises:
        FreezeError: If fsfreeze fails
    """
    frozen = {"value": False}

    def thaw() -> None:
        if not frozen["value"]:
            return
        result = run_command(["fsfreeze", "-u", mountpoint], check=False)
        frozen["value"] = False
        if result.returncode != 0:
            raise FreezeError(mountpoint, f"thaw failed: {result.stderr.strip()}")

    handle = guard.register(f"unfreeze {mountpoint}", thaw)
    try:
        run_checked_command(["fsfreeze", "-f", mountpoint])
    except CommandError as error:
        raise FreezeError(mountpoint, str(error)) from error
    frozen["value"] = True
    log.info(f"Froze {mountpoint}")
    return handle
