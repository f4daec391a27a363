"""Disk sanitize operations.

Hardware NVMe sanitize is disabled due to device restrictions, so the active
policy is a manual best-effort wipe: clear filesystem signatures, zero the
first and last 100 MiB, flush. Every step is allowed to fail; the partition
table written afterwards makes the disk usable regardless.

get_sanitize_state() reads the drive's sanitize log. No target calls it while
hardware sanitize stays disabled.
"""

from __future__ import annotations

import re
from typing import Optional

from steamos_repair.domain.models import SanitizeState
from steamos_repair.logging import LoggerFactory

from .commands import run_checked_command, run_checked_with_streaming_progress, run_command
from .exceptions import CommandError


log = LoggerFactory.for_storage()

WIPE_WINDOW_MIB = 100
BYTES_PER_MIB = 1024 * 1024
SANITIZE_IN_PROGRESS = 2
SANITIZE_PROGRESS_SCALE = 65535

_HEX_VALUE_RE = re.compile(r"((?:0x)?[0-9a-f]+)\s*$", re.IGNORECASE)


def _sanitize_log_value(output: str, field: str) -> Optional[int]:
    for line in output.splitlines():
        if f"({field})" not in line:
            continue
        match = _HEX_VALUE_RE.search(line.strip())
        if match:
            value = match.group(1)
            if value.lower().startswith("0x"):
                return int(value, 16)
            try:
                return int(value)
            except ValueError:
                return int(value, 16)
    return None


def get_sanitize_state(disk: str) -> SanitizeState:
    """Query the drive's sanitize status.

    Returns:
        READY when no sanitize is running, IN_PROGRESS(percent) while one is,
        UNSUPPORTED when the log cannot be read.
    """
    result = run_command(["nvme", "sanitize-log", disk], check=False)
    if result.returncode != 0:
        return SanitizeState.unsupported()
    status = _sanitize_log_value(result.stdout, "SSTAT")
    if status is None:
        return SanitizeState.unsupported()
    if status % 8 != SANITIZE_IN_PROGRESS:
        return SanitizeState.ready()
    progress = _sanitize_log_value(result.stdout, "SPROG")
    if progress is None:
        return SanitizeState.unsupported()
    percent = (progress * 100) // SANITIZE_PROGRESS_SCALE
    log.info(f"sanitize progress: {percent}%")
    return SanitizeState.in_progress(percent)


def _best_effort(description: str, func, *args, **kwargs) -> bool:
    try:
        func(*args, **kwargs)
    except CommandError as error:
        log.warning(f"{description} failed, continuing: {error}")
        return False
    return True


def sanitize_all(disk: str) -> bool:
    """Manually wipe `disk`. Never raises for tool failures.

    Returns:
        True if every step succeeded
    """
    log.warning("Sanitize is disabled due to device restrictions. Performing manual wipe instead.")
    ok = True

    log.info("Wiping partition signatures...")
    ok &= _best_effort("wipefs", run_checked_command, ["wipefs", "-a", disk])

    log.info(f"Zeroing first {WIPE_WINDOW_MIB} MiB...")
    ok &= _best_effort(
        "Zeroing disk head",
        run_checked_with_streaming_progress,
        ["dd", "if=/dev/zero", f"of={disk}", "bs=10M", "count=10", "status=progress", "oflag=sync"],
        total_bytes=WIPE_WINDOW_MIB * BYTES_PER_MIB,
        title="Zeroing head",
    )

    log.info(f"Zeroing last {WIPE_WINDOW_MIB} MiB...")
    size_bytes = None
    try:
        size_bytes = int(run_checked_command(["blockdev", "--getsize64", disk]).strip())
    except (CommandError, ValueError) as error:
        log.warning(f"Could not read size of {disk}, skipping tail wipe: {error}")
        ok = False
    if size_bytes is not None:
        seek_mib = max(size_bytes // BYTES_PER_MIB - WIPE_WINDOW_MIB, 0)
        ok &= _best_effort(
            "Zeroing disk tail",
            run_checked_with_streaming_progress,
            [
                "dd",
                "if=/dev/zero",
                f"of={disk}",
                "bs=1M",
                f"count={WIPE_WINDOW_MIB}",
                f"seek={seek_mib}",
                "status=progress",
                "oflag=sync",
            ],
            total_bytes=WIPE_WINDOW_MIB * BYTES_PER_MIB,
            title="Zeroing tail",
        )

    ok &= _best_effort("sync", run_checked_command, ["sync"])
    return bool(ok)
