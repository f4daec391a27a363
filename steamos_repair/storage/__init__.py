"""Disk-level operations: partitioning, verification, formatting, imaging, erase."""
