"""Repair planning, execution and exit-path cleanup."""
