"""Dataset capabilities - What can be imported and exported."""

from .accounts import AccountDataset, AccountRecord
from .base import DatasetCapability
from .entries import EntryDataset, EntryRecord
from .memory import InMemoryDataset

__all__ = [
    "DatasetCapability",
    "InMemoryDataset",
    "AccountDataset",
    "AccountRecord",
    "EntryDataset",
    "EntryRecord",
]
