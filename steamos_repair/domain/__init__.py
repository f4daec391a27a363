"""Domain models for repair operations.

Immutable descriptions of the disk, its fixed layout and the selected intent.
"""

from __future__ import annotations

from .models import (
    DiskHandle,
    Intent,
    PartitionLayout,
    PartitionRole,
    PartitionSet,
    PartitionSpec,
    RepairMode,
    SanitizeState,
    SanitizeStatus,
    Target,
)


__all__ = [
    "DiskHandle",
    "Intent",
    "PartitionLayout",
    "PartitionRole",
    "PartitionSet",
    "PartitionSpec",
    "RepairMode",
    "SanitizeState",
    "SanitizeStatus",
    "Target",
]
