"""Command execution utilities with progress tracking.

Every external tool (sfdisk, mkfs, dd, btrfstune, steamos-chroot, firmware
updaters, zenity, ...) is run through this module so commands are echoed and
their output is logged the same way everywhere.
"""

from __future__ import annotations

import os
import re
import shlex
import subprocess
from typing import Callable, Mapping, Optional, Sequence

from steamos_repair.logging import LoggerFactory, ThrottledLogger

from .exceptions import CommandError


log = LoggerFactory.for_command()

ProgressCallback = Callable[[Optional[int], Optional[float]], None]


def format_command(command: Sequence[str]) -> str:
    return shlex.join(list(command))


def _merge_env(env: Optional[Mapping[str, str]]) -> Optional[dict]:
    if not env:
        return None
    return dict(os.environ, **env)


def _not_launched(argv: list, error: OSError) -> subprocess.CompletedProcess:
    # 127 is the shell status for a command that could not be run.
    log.error(f"Could not run {argv[0]}: {error}")
    return subprocess.CompletedProcess(argv, 127, stdout="", stderr=str(error))


def run_command(
    command: Sequence[str],
    *,
    check: bool = True,
    env: Optional[Mapping[str, str]] = None,
    input_text: Optional[str] = None,
    log_output: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command, capture its output and log it.

    A tool that cannot be launched reports exit status 127.

    Raises:
        CommandError: If check is True and the command exits non-zero
    """
    argv = list(command)
    log.info("+ {}", format_command(argv))
    try:
        result = subprocess.run(
            argv,
            input=input_text,
            text=True,
            capture_output=True,
            env=_merge_env(env),
        )
    except OSError as error:
        result = _not_launched(argv, error)
    if result.stdout and (log_output or result.returncode != 0):
        log.bind(stream="stdout").debug("stdout: {}", result.stdout.strip())
    if result.stderr and (log_output or result.returncode != 0):
        log.bind(stream="stderr").debug("stderr: {}", result.stderr.strip())
    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stderr or result.stdout or "")
    return result


def run_checked_command(
    command: Sequence[str],
    input_text: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> str:
    """Run a command and raise CommandError if it fails. Returns stdout."""
    return run_command(command, input_text=input_text, env=env).stdout


def run_interactive(
    command: Sequence[str],
    *,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Run a command attached to the terminal and return its exit status."""
    argv = list(command)
    log.info("+ {}", format_command(argv))
    try:
        result = subprocess.run(argv, env=_merge_env(env))
    except OSError as error:
        result = _not_launched(argv, error)
    return result.returncode


_BYTES_RE = re.compile(r"(\d+)\s+bytes")
_RATE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([MG]B)/s")


def parse_dd_progress(line: str) -> tuple[Optional[int], Optional[float]]:
    """Extract (bytes copied, rate in bytes/s) from a dd status=progress line."""
    bytes_match = _BYTES_RE.search(line)
    rate_match = _RATE_RE.search(line)
    bytes_copied = int(bytes_match.group(1)) if bytes_match else None
    rate = None
    if rate_match:
        scale = 1000 ** 2 if rate_match.group(2) == "MB" else 1000 ** 3
        rate = float(rate_match.group(1)) * scale
    return bytes_copied, rate


def run_checked_with_streaming_progress(
    command: Sequence[str],
    *,
    total_bytes: Optional[int] = None,
    title: str = "WORKING",
    progress_callback: Optional[ProgressCallback] = None,
    env: Optional[Mapping[str, str]] = None,
    progress_interval: float = 5.0,
) -> subprocess.CompletedProcess:
    """Run a command that reports progress on stderr (dd status=progress).

    Progress is logged at most every `progress_interval` seconds and handed
    to `progress_callback(bytes_copied, percent)` on every update. There is
    no timeout; the command runs to completion.

    Raises:
        CommandError: If the command exits non-zero
    """
    argv = list(command)
    log.info("+ {}", format_command(argv))
    throttled = ThrottledLogger(LoggerFactory.for_storage(), interval_seconds=progress_interval)
    try:
        process = subprocess.Popen(
            argv,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=_merge_env(env),
        )
    except OSError as error:
        failed = _not_launched(argv, error)
        raise CommandError(argv, failed.returncode, failed.stderr) from error
    stderr_lines = []
    # Text mode turns dd's carriage-return updates into separate lines.
    for line in process.stderr:
        stderr_lines.append(line)
        bytes_copied, rate = parse_dd_progress(line)
        if bytes_copied is None:
            continue
        percent = None
        if total_bytes:
            percent = min(100.0, bytes_copied * 100.0 / total_bytes)
        if progress_callback:
            progress_callback(bytes_copied, percent)
        if percent is not None:
            throttled.info(title, f"{title}: {percent:.1f}%", bytes_copied=bytes_copied, rate=rate)
        else:
            throttled.info(title, f"{title}: {bytes_copied} bytes", bytes_copied=bytes_copied, rate=rate)
    returncode = process.wait()
    stderr_output = "".join(stderr_lines)
    if returncode != 0:
        raise CommandError(argv, returncode, stderr_output)
    return subprocess.CompletedProcess(argv, returncode, stdout="", stderr=stderr_output)
