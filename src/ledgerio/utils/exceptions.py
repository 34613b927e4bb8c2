"""Custom exceptions for the ledgerio import/export engine.

Exception Hierarchy:
-------------------
LedgerIOError (base)
├── ConfigurationError      # Invalid stream format, no backend resolved, bad page transition
├── ResourceError           # Source unreadable, destination unwritable
├── RecordError             # A single row failed conversion or insertion
├── RecordWarning           # A row was skipped (informational)
└── SettingsError           # Settings store unreadable or unwritable

Usage Guidelines:
----------------
1. ConfigurationError and ResourceError are raised to the immediate caller
   (the session controller or its host) and halt the current transition.

2. RecordError and RecordWarning are never propagated out of the engine:
   they are converted into Diagnostic entries and reported at the end.

3. SettingsError is caught by the callers that persist preferences; saving
   preferences is best-effort and never aborts a session.

4. Include context in exceptions:
   - Line number for record-level errors
   - Path for resource errors
"""


class LedgerIOError(Exception):
    """Base exception for all ledgerio errors."""

    pass


class ConfigurationError(LedgerIOError):
    """Raised when a session is not configured well enough to proceed."""

    def __init__(self, message: str, state: str | None = None) -> None:
        """
        Initialize ConfigurationError.

        Args:
            message: Error message.
            state: Optional name of the session state whose guard failed.
        """
        super().__init__(message)
        self.state = state


class ResourceError(LedgerIOError):
    """Raised when the source or destination resource cannot be used."""

    def __init__(self, message: str, path: str | None = None) -> None:
        """
        Initialize ResourceError.

        Args:
            message: Error message.
            path: Optional path of the offending resource.
        """
        super().__init__(message)
        self.path = path


class RecordError(LedgerIOError):
    """Raised when a single row fails conversion or insertion."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        super().__init__(message)
        self.line_number = line_number

    def __str__(self) -> str:
        """
        Return string representation with line number if available.

        Returns:
            str: Error message prefixed with line number if set.
        """
        if self.line_number:
            return f"Line {self.line_number}: {self.args[0]}"
        return str(self.args[0]) if self.args else "Record error"


class RecordWarning(RecordError):
    """Raised when a row is skipped without being an error.

    Coerced values that do not stop the import are collected in
    ``Conversion.warnings`` instead.
    """

    pass


class SettingsError(LedgerIOError):
    """Raised when the settings store cannot be read or written."""

    pass
