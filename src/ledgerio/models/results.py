"""Result types for import and export sessions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Severity of a diagnostic."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Phase(str, Enum):
    """Execution phase reported with progress events."""

    PARSE = "parse"
    INSERT = "insert"
    EXPORT = "export"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single line-level message produced during a session.

    Attributes:
        line_number: 1-based line number in the source (0 if not line-bound)
        severity: Error, warning or info
        message: Human-readable description
    """

    line_number: int
    severity: Severity
    message: str

    def __str__(self) -> str:
        if self.line_number:
            return f"[{self.line_number}] {self.severity.value}: {self.message}"
        return f"{self.severity.value}: {self.message}"


@dataclass
class Report:
    """
    Terminal summary of a session.

    Attributes:
        record_count: Records inserted (import) or rows written (export)
        error_count: Number of error diagnostics
        warning_count: Number of warning diagnostics
        cancelled: Whether the session was cancelled by the caller
        parsed_count: Rows successfully converted during the parse phase
        rejected_count: Records refused by the dataset during the insert phase
        duplicate_count: Duplicates met during the insert phase
    """

    record_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    cancelled: bool = False
    parsed_count: int = 0
    rejected_count: int = 0
    duplicate_count: int = 0

    @property
    def succeeded(self) -> bool:
        """
        Check whether the session completed without error.

        Returns:
            bool: True if no error was reported and the session was not cancelled.
        """
        return self.error_count == 0 and not self.cancelled

    @property
    def is_partial(self) -> bool:
        """Some records were committed while others were rejected."""
        return self.record_count > 0 and self.error_count > 0

    def count(self, diagnostic: Diagnostic) -> None:
        """Account for ``diagnostic`` in the summary counters."""
        if diagnostic.severity == Severity.ERROR:
            self.error_count += 1
        elif diagnostic.severity == Severity.WARNING:
            self.warning_count += 1

    def get_summary(self) -> str:
        """
        Get a human-readable summary.

        Returns:
            str: Summary string with counts and status.
        """
        status = "cancelled" if self.cancelled else ("ok" if self.succeeded else "errors")
        return (
            f"{self.record_count} records, "
            f"{self.error_count} errors, {self.warning_count} warnings ({status})"
        )


@dataclass
class ConsumeResult:
    """
    Outcome of handing a chunk of records to a dataset.

    Attributes:
        inserted: Number of records committed
        diagnostics: Per-record messages (rejections, duplicates)
        duplicates: Number of duplicates met
    """

    inserted: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    duplicates: int = 0


@dataclass
class Conversion:
    """
    Result of converting one row of fields into a domain record.

    Attributes:
        record: The converted record
        warnings: Coercion messages, reported as warnings
    """

    record: Any
    warnings: list[str] = field(default_factory=list)
