"""In-memory keyed dataset, base of the reference datasets."""

from collections.abc import Hashable, Iterator, Sequence
from typing import Any

import structlog

from ..models.results import ConsumeResult, Diagnostic, Severity
from ..models.session import DuplicateMode, ImportOptions, ImportRecord
from .base import DatasetCapability

logger = structlog.get_logger(__name__)


class InMemoryDataset(DatasetCapability):
    """
    Dataset storing records in an insertion-ordered dict.

    Subclasses provide ``key`` (record identity) and may override ``check``
    to reject records whose references cannot be resolved.
    """

    def __init__(self) -> None:
        self.records: dict[Hashable, Any] = {}

    def key(self, record: Any) -> Hashable:
        raise NotImplementedError

    def check(self, record: Any) -> str | None:
        """Return a rejection message for ``record``, or None to accept it."""
        return None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.records.values())

    def count(self) -> int | None:
        return len(self.records)

    def clear(self) -> int:
        removed = len(self.records)
        self.records.clear()
        logger.info("Dataset emptied", dataset=self.type_id, removed=removed)
        return removed

    def consume_rows(
        self, records: Sequence[ImportRecord], options: ImportOptions
    ) -> ConsumeResult:
        result = ConsumeResult()

        for item in records:
            record = item.record
            problem = self.check(record)
            if problem is not None:
                result.diagnostics.append(
                    Diagnostic(item.line_number, Severity.ERROR, problem)
                )
                continue

            key = self.key(record)
            if key in self.records:
                result.duplicates += 1
                if options.duplicate_mode == DuplicateMode.ABORT:
                    result.diagnostics.append(
                        Diagnostic(
                            item.line_number,
                            Severity.ERROR,
                            f"Duplicate {self.type_id.lower()} '{key}'",
                        )
                    )
                    continue
                if options.duplicate_mode == DuplicateMode.IGNORE:
                    result.diagnostics.append(
                        Diagnostic(
                            item.line_number,
                            Severity.WARNING,
                            f"Duplicate {self.type_id.lower()} '{key}' ignored",
                        )
                    )
                    continue

            # REPLACE overwrites in place: the record keeps its position so
            # parents are still exported before their children
            self.records[key] = record
            result.inserted += 1

        return result
