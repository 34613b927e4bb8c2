"""CSV-backed book used by the command-line host.

A book is a directory holding one CSV file per dataset, written with the
default export format. The CLI loads it into the in-memory datasets before
an import or export and writes it back after a successful import, going
through the execution engine both ways.
"""

import os
from pathlib import Path

import structlog

from .backends.csv_backend import CSVBackend
from .datasets import AccountDataset, DatasetCapability, EntryDataset
from .execution.engine import ExecutionEngine
from .models.results import Severity
from .models.session import DuplicateMode, ExportSession, ImportOptions, ImportSession
from .models.stream_format import Mode, StreamFormat
from .observability.progress import LoggingSink
from .utils.exceptions import LedgerIOError

logger = structlog.get_logger(__name__)

BOOK_FILES = {
    "Account": "accounts.csv",
    "Entry": "entries.csv",
}


class Book:
    """
    Accounts and entries kept in a directory.

    Args:
        directory: Book directory (created on first save)
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()
        self.accounts = AccountDataset()
        self.entries = EntryDataset(self.accounts)
        self._backend = CSVBackend()

    @property
    def capabilities(self) -> list[DatasetCapability]:
        # Accounts first: entries reference them
        return [self.accounts, self.entries]

    def path_of(self, capability: DatasetCapability) -> Path:
        return self.directory / BOOK_FILES[capability.type_id]

    def load(self) -> None:
        """
        Read every dataset file present in the directory.

        Raises:
            LedgerIOError: If a file cannot be read back without error
        """
        for capability in self.capabilities:
            path = self.path_of(capability)
            if not path.exists():
                continue
            session = ImportSession(
                path=path,
                content_type="text/csv",
                capability=capability,
                backend=self._backend,
                stream_format=StreamFormat.default(Mode.IMPORT, capability.type_id),
                options=ImportOptions(duplicate_mode=DuplicateMode.REPLACE),
            )
            report = ExecutionEngine(session, sink=LoggingSink()).run()
            if report.error_count:
                first = next(d for d in session.diagnostics if d.severity == Severity.ERROR)
                raise LedgerIOError(f"Book file {path} is corrupted: {first}")
            logger.info("Book dataset loaded", dataset=capability.type_id, records=report.record_count)

    def save(self) -> None:
        """Write every dataset back, each file replaced atomically."""
        self.directory.mkdir(parents=True, exist_ok=True)
        for capability in self.capabilities:
            path = self.path_of(capability)
            tmp_path = path.with_name(f".{path.name}.tmp")
            session = ExportSession(
                path=tmp_path,
                content_type="text/csv",
                capability=capability,
                backend=self._backend,
                stream_format=StreamFormat.default(Mode.EXPORT, capability.type_id),
            )
            report = ExecutionEngine(session, sink=LoggingSink()).run()
            os.replace(tmp_path, path)
            logger.info("Book dataset saved", dataset=capability.type_id, records=report.record_count)
