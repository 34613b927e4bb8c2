"""Raw lines backend for opaque ("other") formats.

Each physical line is handed to the dataset as a single field, without
splitting or unquoting; on export the fields of a row are joined with the
field separator (a tab when the format has none) and written as is.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import TextIO

import structlog

from ..constants import RAW_CONTENT_TYPES
from ..models.stream_format import FormatKind, Mode, StreamFormat
from .base import Backend, ParsedRow, RowStream, RowWriter, open_text, read_text

logger = structlog.get_logger(__name__)


class RawRowWriter(RowWriter):
    def __init__(self, handle: TextIO, separator: str) -> None:
        super().__init__()
        self._handle = handle
        self._separator = separator

    def write_header(self, headers: list[str]) -> None:
        self._handle.write(self._separator.join(headers) + "\n")

    def write_row(self, fields: list[str]) -> None:
        self._handle.write(self._separator.join(fields) + "\n")
        self.count += 1

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class RawLinesBackend(Backend):
    """Passthrough backend: one line, one single-field row."""

    display_name = "Raw lines"
    version = "1.0"
    content_types = RAW_CONTENT_TYPES

    def default_format(self, mode: Mode) -> StreamFormat:
        return StreamFormat(
            name="Raw",
            mode=mode,
            kind=FormatKind.OTHER,
            field_sep=None,
            string_delim=None,
            updatable=False,
        )

    def parse(self, source: Path, fmt: StreamFormat) -> RowStream:
        lines = read_text(source, fmt).splitlines()
        logger.debug("Raw source read", source=str(source), lines=len(lines))
        return RowStream(self._rows(lines), total=len(lines))

    @staticmethod
    def _rows(lines: list[str]) -> Iterator[ParsedRow]:
        for number, line in enumerate(lines, start=1):
            if line.strip():
                yield ParsedRow(number, [line])

    def open_writer(self, sink: Path, fmt: StreamFormat) -> RawRowWriter:
        return RawRowWriter(open_text(sink, fmt), fmt.field_sep or "\t")
