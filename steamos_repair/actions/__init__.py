"""System power actions."""
