"""Session state models.

An ImportSession or ExportSession holds the mutable state of one run, from
source selection to final report. Configuration fields are written by the
SessionController, diagnostics and report by the ExecutionEngine; everything
but the final report is discardable once the session is closed.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .results import Diagnostic, Report
from .stream_format import Mode, StreamFormat

if TYPE_CHECKING:
    from ..backends.base import Backend
    from ..datasets.base import DatasetCapability


class DuplicateMode(str, Enum):
    """What a dataset does when an imported record already exists."""

    REPLACE = "replace"  # Delete the existing record, insert the new one
    IGNORE = "ignore"  # Keep the existing record, skip the new one
    ABORT = "abort"  # Reject the new record as an error


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""

    CONFIGURING = "configuring"
    EXECUTING = "executing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ImportOptions:
    """
    Options applied while inserting imported records.

    Attributes:
        empty_before_insert: Empty the dataset before the first insertion
        duplicate_mode: How existing records are handled
        stop_on_first_error: Stop the run as soon as one error is reported
    """

    empty_before_insert: bool = False
    duplicate_mode: DuplicateMode = DuplicateMode.ABORT
    stop_on_first_error: bool = False


@dataclass(frozen=True)
class ImportRecord:
    """A converted record, remembering the source line it came from."""

    line_number: int
    record: Any


@dataclass
class Session:
    """
    State shared by import and export sessions.

    Attributes:
        mode: Import or Export
        path: Source (import) or destination (export) file
        content_type: Sniffed or declared content type
        capability: Chosen dataset capability
        backend: Chosen backend
        stream_format: Chosen stream format
        diagnostics: Messages in chronological order
        report: Terminal report (None until execution ends)
        status: Lifecycle status
    """

    mode: Mode
    path: Path | None = None
    content_type: str | None = None
    capability: "DatasetCapability | None" = None
    backend: "Backend | None" = None
    stream_format: StreamFormat | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    report: Report | None = None
    status: SessionStatus = SessionStatus.CONFIGURING

    @property
    def is_finished(self) -> bool:
        return self.status in (SessionStatus.DONE, SessionStatus.CANCELLED, SessionStatus.FAILED)


@dataclass
class ImportSession(Session):
    """Session importing a file into a dataset."""

    mode: Mode = Mode.IMPORT
    options: ImportOptions = field(default_factory=ImportOptions)


@dataclass
class ExportSession(Session):
    """Session exporting a dataset to a file."""

    mode: Mode = Mode.EXPORT
