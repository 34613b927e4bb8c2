"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
- Dataset fixtures: empty and seeded charts of accounts, entries
- Infrastructure fixtures: settings stores, registries, file writers
- Session fixtures: ready-to-run import and export sessions
"""

from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from src.ledgerio.backends.base import Backend
from src.ledgerio.backends.csv_backend import CSVBackend
from src.ledgerio.core.registry import BackendRegistry, default_registry
from src.ledgerio.datasets import AccountDataset, DatasetCapability, EntryDataset
from src.ledgerio.models.session import ExportSession, ImportOptions, ImportSession
from src.ledgerio.models.stream_format import Mode, StreamFormat
from src.ledgerio.observability.progress import CollectingSink
from src.ledgerio.persistence.settings import MemorySettings

# =============================================================================
# Dataset Fixtures
# =============================================================================


@pytest.fixture
def accounts() -> AccountDataset:
    """Empty chart of accounts."""
    return AccountDataset()


@pytest.fixture
def chart() -> AccountDataset:
    """Chart of accounts with a few accounts, one of them closed."""
    dataset = AccountDataset()
    dataset.add(code="4", label="Third parties")
    dataset.add(code="411", label="Customers", parent="4", opened_on=date(2024, 1, 1))
    dataset.add(code="5", label="Financial accounts")
    dataset.add(code="512", label="Bank", parent="5", opened_on=date(2024, 1, 1))
    dataset.add(code="530", label="Cash", parent="5", closed=True)
    return dataset


@pytest.fixture
def entries(chart: AccountDataset) -> EntryDataset:
    """Empty journal booked against the seeded chart."""
    return EntryDataset(chart)


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def settings() -> MemorySettings:
    """In-memory settings store."""
    return MemorySettings()


@pytest.fixture
def registry(chart: AccountDataset, entries: EntryDataset) -> BackendRegistry:
    """Registry with the shipped backends, the seeded chart and the journal."""
    return default_registry([chart, entries])


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing text to a file under tmp_path.

    Example:
        def test_something(write_file):
            path = write_file("accounts.csv", "code;label\\n512;Bank\\n")
    """

    def _write(name: str, content: str, encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        path.write_bytes(content.encode(encoding))
        return path

    return _write


# =============================================================================
# Session Fixtures
# =============================================================================


@pytest.fixture
def import_session() -> Callable[..., ImportSession]:
    """Factory building a configured ImportSession.

    The format defaults to the import defaults (";" separated, one header
    row, SQL dates) and the backend to a plain CSVBackend.
    """

    def _make(
        path: Path,
        capability: DatasetCapability,
        fmt: StreamFormat | None = None,
        backend: Backend | None = None,
        **options: Any,
    ) -> ImportSession:
        return ImportSession(
            path=path,
            content_type="text/csv",
            capability=capability,
            backend=backend or CSVBackend(),
            stream_format=fmt or StreamFormat.default(Mode.IMPORT, capability.type_id),
            options=ImportOptions(**options),
        )

    return _make


@pytest.fixture
def export_session() -> Callable[..., ExportSession]:
    """Factory building a configured ExportSession."""

    def _make(
        path: Path,
        capability: DatasetCapability,
        fmt: StreamFormat | None = None,
        backend: Backend | None = None,
    ) -> ExportSession:
        return ExportSession(
            path=path,
            content_type="text/csv",
            capability=capability,
            backend=backend or CSVBackend(),
            stream_format=fmt or StreamFormat.default(Mode.EXPORT, capability.type_id),
        )

    return _make
