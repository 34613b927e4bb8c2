"""Dataset capability contract.

A dataset capability is the narrow interface a family of domain objects
(accounts, entries, ledgers...) exposes to be exported or imported. The
engine never looks inside records: it hands rows of string fields to
``convert_row`` and converted records to ``consume_rows`` on import, and
writes whatever ``produce_rows`` yields on export.

A capability may support a single direction; ``can_import`` and
``can_export`` tell which methods are implemented.
"""

from abc import ABC
from collections.abc import Iterator, Sequence

from pydantic import ValidationError

from ..models.results import ConsumeResult, Conversion
from ..models.session import ImportOptions, ImportRecord
from ..models.stream_format import Mode, StreamFormat


class DatasetCapability(ABC):
    """
    Base class for importable/exportable datasets.

    Subclasses set ``type_id`` and ``label`` and override the methods of
    the directions they support.
    """

    type_id: str = ""
    label: str = ""

    def headers(self) -> list[str]:
        """Column titles, written as the header row on export."""
        return []

    def count(self) -> int | None:
        """Number of rows ``produce_rows`` will yield, or None if not cheap."""
        return None

    def produce_rows(self, fmt: StreamFormat) -> Iterator[list[str]]:
        """Yield the dataset content as rows of string fields."""
        raise NotImplementedError(f"{self.type_id} dataset cannot be exported")

    def convert_row(self, fields: Sequence[str], fmt: StreamFormat) -> Conversion:
        """
        Convert one row of fields into a record.

        Values coerced on the way are reported in ``Conversion.warnings``;
        the record is still imported.

        Raises:
            RecordError: If the row cannot be converted
            RecordWarning: If the row is skipped without being an error; it
                is reported as a warning and no record is imported
        """
        raise NotImplementedError(f"{self.type_id} dataset cannot be imported")

    def consume_rows(
        self, records: Sequence[ImportRecord], options: ImportOptions
    ) -> ConsumeResult:
        """Insert converted records, rejecting individual ones as diagnostics."""
        raise NotImplementedError(f"{self.type_id} dataset cannot be imported")

    def clear(self) -> int:
        """Empty the dataset, returning the number of records removed."""
        raise NotImplementedError(f"{self.type_id} dataset cannot be emptied")

    @property
    def can_export(self) -> bool:
        return type(self).produce_rows is not DatasetCapability.produce_rows

    @property
    def can_import(self) -> bool:
        return (
            type(self).convert_row is not DatasetCapability.convert_row
            and type(self).consume_rows is not DatasetCapability.consume_rows
        )

    @property
    def can_clear(self) -> bool:
        return type(self).clear is not DatasetCapability.clear

    def supports(self, mode: Mode) -> bool:
        """Whether the dataset can be used in ``mode``."""
        return self.can_import if Mode(mode) == Mode.IMPORT else self.can_export

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type_id}>"


def format_validation_error(error: ValidationError) -> str:
    """
    Format Pydantic validation error into human-readable message.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message
    """
    errors = error.errors()
    if not errors:
        return str(error)

    first_error = errors[0]
    field = ".".join(str(loc) for loc in first_error["loc"])
    msg = first_error["msg"]

    if len(errors) > 1:
        return f"{field}: {msg} (and {len(errors) - 1} more errors)"
    return f"{field}: {msg}"
