"""Utility functions and exceptions."""

from .exceptions import (
    ConfigurationError,
    LedgerIOError,
    RecordError,
    RecordWarning,
    ResourceError,
    SettingsError,
)

__all__ = [
    "LedgerIOError",
    "ConfigurationError",
    "ResourceError",
    "RecordError",
    "RecordWarning",
    "SettingsError",
]
