"""
Pytest configuration and shared fixtures for steamos-repair tests.

No test touches a real disk: subprocess.run and subprocess.Popen are replaced
by a recording fake that answers with canned results.
"""

import io
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from loguru import logger

from steamos_repair.config.settings import RepairConfig
from steamos_repair.domain.models import DiskHandle, PartitionLayout


# ==============================================================================
# Command Fakes
# ==============================================================================


def normalize_argv(argv) -> List[str]:
    """Strip the directory from argv[0] so /usr/bin/dd and dd compare equal."""
    argv = [str(arg) for arg in argv]
    if argv:
        argv[0] = os.path.basename(argv[0])
    return argv


@dataclass
class RecordedCall:
    argv: List[str]
    kind: str
    env: Optional[Dict[str, str]] = None
    input: Optional[str] = None


class FakePopen:
    """Minimal stand-in for a dd process writing progress to stderr."""

    def __init__(self, argv, returncode: int, stderr: str):
        self.args = argv
        self.returncode = returncode
        self.stderr = io.StringIO(stderr)

    def wait(self, timeout=None) -> int:
        return self.returncode


class FakeCommands:
    """
    Recording replacement for subprocess.run / subprocess.Popen.

    Responses are matched by argv prefix; the most recently added rule wins.
    Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: List[RecordedCall] = []
        self._rules: List[Tuple[Tuple[str, ...], int, str, str]] = []
        self._missing: List[Tuple[str, ...]] = []

    def respond(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._rules.insert(0, (tuple(prefix), returncode, stdout, stderr))

    def respond_blkid(self, device: str, tag: str, value: str) -> None:
        self.respond("blkid", "-o", "value", "-s", tag, device, stdout=f"{value}\n")

    def fail(self, *prefix: str, returncode: int = 1, stderr: str = "failed") -> None:
        self.respond(*prefix, returncode=returncode, stderr=stderr)

    def missing(self, *prefix: str) -> None:
        """Make matching commands fail to launch, as if the tool were absent."""
        self._missing.append(tuple(prefix))

    def _launch(self, argv: List[str]) -> None:
        for prefix in self._missing:
            if tuple(argv[: len(prefix)]) == prefix:
                raise FileNotFoundError(2, "No such file or directory", argv[0])

    def _match(self, argv: List[str]) -> Tuple[int, str, str]:
        for prefix, returncode, stdout, stderr in self._rules:
            if tuple(argv[: len(prefix)]) == prefix:
                return returncode, stdout, stderr
        return 0, "", ""

    def run(self, argv, input=None, env=None, **kwargs):
        normalized = normalize_argv(argv)
        self.calls.append(RecordedCall(normalized, "run", env=env, input=input))
        self._launch(normalized)
        returncode, stdout, stderr = self._match(normalized)
        return subprocess.CompletedProcess(list(argv), returncode, stdout=stdout, stderr=stderr)

    def popen(self, argv, env=None, **kwargs):
        normalized = normalize_argv(argv)
        self.calls.append(RecordedCall(normalized, "popen", env=env))
        self._launch(normalized)
        returncode, _stdout, stderr = self._match(normalized)
        return FakePopen(list(argv), returncode, stderr)

    @property
    def commands(self) -> List[List[str]]:
        return [call.argv for call in self.calls]

    def find(self, *prefix: str) -> List[List[str]]:
        return [argv for argv in self.commands if tuple(argv[: len(prefix)]) == prefix]

    def index_of(self, *prefix: str) -> int:
        for index, argv in enumerate(self.commands):
            if tuple(argv[: len(prefix)]) == prefix:
                return index
        raise AssertionError(f"{prefix} was never run")


@pytest.fixture
def fake_commands(mocker) -> FakeCommands:
    """
    Fixture replacing subprocess.run/Popen and shutil.which.

    Returns:
        FakeCommands recorder; configure it with respond() before acting.
    """
    fake = FakeCommands()
    mocker.patch("subprocess.run", side_effect=fake.run)
    mocker.patch("subprocess.Popen", side_effect=fake.popen)
    mocker.patch("shutil.which", side_effect=lambda name: f"/usr/bin/{name}")
    return fake


# ==============================================================================
# Configuration Fixtures
# ==============================================================================


@pytest.fixture
def repair_config(tmp_path) -> RepairConfig:
    """
    Fixture providing a RepairConfig for /dev/nvme0n1.

    Vendored firmware directories point into tmp_path and do not exist unless
    a test creates them.
    """
    return RepairConfig(
        disk=DiskHandle(path="/dev/nvme0n1"),
        layout=PartitionLayout.default(),
        vendored_bios_dir=tmp_path / "jupiter-bios",
        vendored_controller_dir=tmp_path / "jupiter-controller-fw",
    )


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """Fixture providing a temporary settings file path."""
    settings_dir = tmp_path / "etc" / "steamos-repair"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def reset_loguru():
    """Drop every sink a test added."""
    yield
    logger.remove()


@pytest.fixture
def log_records() -> List[dict]:
    """Capture loguru records emitted during the test."""
    records: List[dict] = []
    logger.add(lambda message: records.append(message.record), level="TRACE")
    return records
