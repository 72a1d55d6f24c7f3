"""User settings model and persistence."""

from .schema import Settings
from .store import SettingsStore

__all__ = ["Settings", "SettingsStore"]
