"""Custom exceptions for repair operations.

This module defines a hierarchy of exceptions for the repair tool to provide
specific error handling and a distinct exit code per failure kind.

Exception Hierarchy:
    RepairError (base)
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   └── SourceRootNotFoundError
        ├── VerificationError
        │   ├── PartitionTypeMismatchError   (exit code 1)
        │   └── PartitionLabelMismatchError  (exit code 2)
        ├── CommandError
        ├── PartitionTableError
        ├── FormatError
        │   └── FormatOperationError
        ├── ImagingError
        │   ├── InsufficientSpaceError
        │   └── DuplicateFilesystemIdentityError
        ├── BootConfigError
        ├── MountError
        │   └── FreezeError
        └── PromptCancelled

Usage:
    from steamos_repair.storage.exceptions import PartitionTypeMismatchError

    if live_type != expected_type:
        raise PartitionTypeMismatchError(device, live_type, expected_type)
"""

from __future__ import annotations

from typing import Sequence


class RepairError(Exception):
    """Base exception for all repair operations."""

    exit_code = 1


class DeviceError(RepairError):
    """Base exception for device-related errors."""


class DeviceNotFoundError(DeviceError):
    """Device was not found or does not exist."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"{device_name} does not exist -- no nvme drive detected?")


class SourceRootNotFoundError(DeviceError):
    """The installer's own root device could not be resolved."""

    def __init__(self, device_name: str = ""):
        self.device_name = device_name
        msg = "Could not find USB installer root -- usb hub issue?"
        if device_name:
            msg += f" (resolved {device_name!r})"
        super().__init__(msg)


class VerificationError(RepairError):
    """A live partition does not match the expected layout."""


class PartitionTypeMismatchError(VerificationError):
    """Live filesystem type differs from the expected one."""

    exit_code = 1

    def __init__(self, device_name: str, actual: str, expected: str):
        self.device_name = device_name
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Device {device_name} is type {actual} but expected {expected} - "
            f"cannot proceed. You may try full recovery."
        )


class PartitionLabelMismatchError(VerificationError):
    """Live GPT partition label differs from the expected one."""

    exit_code = 2

    def __init__(self, device_name: str, actual: str, expected: str):
        self.device_name = device_name
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Device {device_name} has label {actual} but expected {expected} - "
            f"cannot proceed. You may try full recovery."
        )


class CommandError(RepairError):
    """An external tool exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        message = stderr.strip() or "Command failed"
        super().__init__(
            f"Command failed ({returncode}): {' '.join(self.argv)}: {message}"
        )


class PartitionTableError(RepairError):
    """Writing the partition table failed."""

    def __init__(self, message: str, device: str | None = None):
        self.device = device
        super().__init__(message)


class FormatError(RepairError):
    """Base exception for format operations."""


class FormatOperationError(FormatError):
    """Generic format operation failure."""

    def __init__(self, message: str, device: str | None = None):
        self.device = device
        super().__init__(message)


class ImagingError(RepairError):
    """Base exception for rootfs imaging."""

    def __init__(self, message: str, source: str | None = None, target: str | None = None):
        self.source = source
        self.target = target
        super().__init__(message)


class InsufficientSpaceError(ImagingError):
    """Target slot is too small for the source root filesystem."""

    def __init__(
        self,
        source_name: str,
        source_size: int,
        target_name: str,
        target_size: int,
    ):
        self.source_size = source_size
        self.target_size = target_size
        super().__init__(
            f"Target {target_name} ({target_size} bytes) "
            f"is too small for source {source_name} ({source_size} bytes)",
            source=source_name,
            target=target_name,
        )


class DuplicateFilesystemIdentityError(ImagingError):
    """Target filesystem UUID collides with the source or the other slot."""

    def __init__(self, target_name: str, uuid: str):
        self.uuid = uuid
        super().__init__(
            f"Filesystem UUID {uuid} on {target_name} is not unique", target=target_name
        )


class BootConfigError(RepairError):
    """Boot configuration of a partition set failed."""

    def __init__(self, partset: str, message: str):
        self.partset = partset
        super().__init__(f"Boot configuration for partition set {partset} failed: {message}")


class MountError(RepairError):
    """Base exception for mount-related errors."""


class FreezeError(MountError):
    """Freezing or thawing a filesystem failed."""

    def __init__(self, mountpoint: str, message: str):
        self.mountpoint = mountpoint
        super().__init__(f"Failed to freeze {mountpoint}: {message}")


class PromptCancelled(RepairError):
    """The operator chose Cancel at a confirmation prompt."""

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"Cancelled: {title}")
