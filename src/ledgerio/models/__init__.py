"""Data models for the ledgerio import/export engine."""

from .results import ConsumeResult, Conversion, Diagnostic, Phase, Report, Severity
from .session import (
    DuplicateMode,
    ExportSession,
    ImportOptions,
    ImportRecord,
    ImportSession,
    Session,
    SessionStatus,
)
from .stream_format import DateFormat, FormatKind, Mode, StreamFormat, format_key

__all__ = [
    # Stream format
    "StreamFormat",
    "Mode",
    "FormatKind",
    "DateFormat",
    "format_key",
    # Results
    "Diagnostic",
    "Severity",
    "Phase",
    "Report",
    "ConsumeResult",
    "Conversion",
    # Sessions
    "Session",
    "ImportSession",
    "ExportSession",
    "ImportOptions",
    "ImportRecord",
    "DuplicateMode",
    "SessionStatus",
]
