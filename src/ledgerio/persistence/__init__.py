"""Persistence layer - Settings stores for formats and folders."""

from .settings import MemorySettings, SettingsStore, YamlSettings

__all__ = ["SettingsStore", "MemorySettings", "YamlSettings"]
