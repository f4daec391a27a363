"""Fixed GPT partition table for the target disk.

The table is rendered as an sfdisk script and written in one call. Sizes are
given in MiB without explicit start offsets, so sfdisk aligns every partition
to a 1MiB boundary (the first one starts at 1MiB).
"""

from __future__ import annotations

import shutil

from steamos_repair.domain.models import DiskHandle, PartitionLayout
from steamos_repair.logging import LoggerFactory

from .commands import run_checked_command
from .exceptions import CommandError, PartitionTableError


log = LoggerFactory.for_storage()


def render_partition_table(disk: DiskHandle, layout: PartitionLayout) -> str:
    """Render the sfdisk script for `layout` on `disk`."""
    lines = ["label: gpt"]
    if disk.sector_size:
        lines.append(f"sector-size: {disk.sector_size}")
    for spec in layout:
        lines.append(
            f'{disk.partition(spec.index)}: name="{spec.name}", '
            f"size={spec.size_mib}MiB, type={spec.type_guid}"
        )
    return "\n".join(lines) + "\n"


def write_partition_table(disk: DiskHandle, layout: PartitionLayout) -> None:
    """Write the known partition table to the raw disk.

    Raises:
        PartitionTableError: If sfdisk is missing or fails
    """
    sfdisk_path = shutil.which("sfdisk")
    if not sfdisk_path:
        raise PartitionTableError("sfdisk not found", device=disk.path)
    layout.validate()
    script = render_partition_table(disk, layout)
    log.info(f"Writing {len(layout)}-entry partition table to {disk.path}")
    try:
        run_checked_command([sfdisk_path, disk.path], input_text=script)
    except CommandError as error:
        raise PartitionTableError(
            f"Failed to write partition table on {disk.path}: {error}", device=disk.path
        ) from error
