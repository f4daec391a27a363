"""Recovery and reinstallation tool for dual partition-set SteamOS devices."""

from .__version__ import __version__


__all__ = ["__version__"]
