"""Vendor firmware staging."""
