"""Live partition probing and verification.

Before a partial repair rewrites anything, the live filesystem type and GPT
partition label of every partition the repair depends on are compared against
the fixed layout. A disk that was repartitioned by hand is refused rather than
half-rewritten.
"""

from __future__ import annotations

from steamos_repair.logging import LoggerFactory

from .commands import run_command
from .exceptions import PartitionLabelMismatchError, PartitionTypeMismatchError


log = LoggerFactory.for_storage()


def probe_tag(device: str, tag: str) -> str:
    """Return a blkid tag value (TYPE, PARTLABEL, UUID, ...) or "" if absent."""
    result = run_command(
        ["blkid", "-o", "value", "-s", tag, device],
        check=False,
    )
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def verify_partition(
    device: str,
    expected_type: str,
    expected_label: str,
    *,
    enabled: bool = True,
) -> None:
    """Verify filesystem type and partition label of `device`.

    Args:
        device: Partition node (e.g., /dev/nvme0n1p1)
        expected_type: Filesystem type blkid should report (e.g., "vfat")
        expected_label: GPT partition label (e.g., "esp")
        enabled: Global verification switch; when False this is a no-op

    Raises:
        PartitionTypeMismatchError: Live type differs (exit code 1)
        PartitionLabelMismatchError: Live label differs (exit code 2)
    """
    if not enabled:
        log.debug(f"Partition verification disabled, skipping {device}")
        return

    live_type = probe_tag(device, "TYPE")
    live_label = probe_tag(device, "PARTLABEL")
    if live_type != expected_type:
        raise PartitionTypeMismatchError(device, live_type, expected_type)
    if live_label != expected_label:
        raise PartitionLabelMismatchError(device, live_label, expected_label)
    log.debug(f"Verified {device}: type={live_type} label={live_label}")
