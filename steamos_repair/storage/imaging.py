"""Root filesystem imaging onto the A/B slots.

The running installer's root filesystem is copied block-for-block onto a root
slot, then given a fresh filesystem UUID. Two btrfs filesystems with the same
UUID on one machine confuse the kernel, so the new UUID is read back and
compared with the source and with the slot imaged before it.

The caller freezes the source for the whole batch; nothing in here freezes or
thaws anything.
"""

from __future__ import annotations

import shutil
from typing import Iterable, Optional

from steamos_repair.logging import operation_context

from .commands import (
    ProgressCallback,
    run_checked_command,
    run_checked_with_streaming_progress,
    run_command,
)
from .exceptions import (
    CommandError,
    DuplicateFilesystemIdentityError,
    ImagingError,
    InsufficientSpaceError,
)
from .verification import probe_tag


DD_BLOCK_SIZE = "128M"


def get_device_size(device: str) -> int:
    """Size of a block device in bytes (blockdev --getsize64)."""
    output = run_checked_command(["blockdev", "--getsize64", device])
    try:
        return int(output.strip())
    except ValueError as error:
        raise ImagingError(f"Unexpected size for {device}: {output.strip()!r}") from error


def image_root(
    source: str,
    target: str,
    *,
    known_uuids: Iterable[str] = (),
    progress_callback: Optional[ProgressCallback] = None,
) -> str:
    """Copy the frozen `source` rootfs onto `target` and re-randomize its UUID.

    Args:
        source: Frozen source root device (e.g., /dev/sda2)
        target: Root slot partition (e.g., /dev/nvme0n1p4)
        known_uuids: UUIDs the new filesystem must not reuse (other slots)
        progress_callback: Optional callback(bytes_copied, percent)

    Returns:
        The new filesystem UUID of `target`

    Raises:
        InsufficientSpaceError: If target is smaller than source
        DuplicateFilesystemIdentityError: If the new UUID is not unique
        ImagingError: If copying, re-identifying or checking fails
    """
    dd_path = shutil.which("dd")
    if not dd_path:
        raise ImagingError("dd not found", source=source, target=target)

    with operation_context("image-root", source=source, target=target) as log:
        source_size = get_device_size(source)
        target_size = get_device_size(target)
        if target_size < source_size:
            raise InsufficientSpaceError(source, source_size, target, target_size)

        source_uuid = probe_tag(source, "UUID")
        try:
            run_checked_with_streaming_progress(
                [
                    dd_path,
                    f"if={source}",
                    f"of={target}",
                    f"bs={DD_BLOCK_SIZE}",
                    "status=progress",
                    "oflag=sync",
                ],
                total_bytes=source_size,
                title=f"Imaging {target}",
                progress_callback=progress_callback,
            )
            run_checked_command(["btrfstune", "-f", "-u", target])
        except CommandError as error:
            raise ImagingError(str(error), source=source, target=target) from error

        new_uuid = probe_tag(target, "UUID")
        forbidden = {uuid for uuid in known_uuids if uuid}
        if source_uuid:
            forbidden.add(source_uuid)
        if not new_uuid or new_uuid in forbidden:
            raise DuplicateFilesystemIdentityError(target, new_uuid or "(none)")
        log.debug(f"{target} has new filesystem UUID {new_uuid}")

        check = run_command(["btrfs", "check", target], check=False)
        if check.returncode != 0:
            raise ImagingError(
                f"btrfs check failed on {target}: {check.stderr.strip() or check.stdout.strip()}",
                source=source,
                target=target,
            )
        return new_uuid
