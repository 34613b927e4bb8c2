"""Delimited text backend.

Reads and writes CSV-like files driven by a StreamFormat: charset, field
separator and string delimiter. Header rows are not interpreted here; the
engine skips or writes them according to the header policy.

Line numbering:
--------------
Rows carry the 1-based physical line they start on, header rows included,
so that diagnostics point at the line a user sees in an editor. Blank lines
produce no row but still count.

Export:
------
Characters the charset cannot encode are replaced, and typographic dashes
are first turned into '-' for non-Unicode charsets. With ``allow_formulas``
turned off, fields starting with a spreadsheet formula character are
prefixed with a quote. This guard is off by default: it would also prefix
negative amounts.
"""

import csv
import io
from collections.abc import Iterator
from pathlib import Path
from typing import Any, TextIO

import structlog

from ..constants import CSV_CONTENT_TYPES
from ..models.stream_format import StreamFormat
from .base import Backend, ParsedRow, RowStream, RowWriter, is_unicode, lookup_codec, open_text, read_text

logger = structlog.get_logger(__name__)

# Typographic dashes and their closest ASCII rendering
_DASHES = str.maketrans({"‐": "-", "‑": "-", "‒": "-", "–": "-", "—": "-", "―": "-", "−": "-"})

_FORMULA_PREFIXES = ("=", "@", "+", "-", "\t", "\r")


def csv_dialect(fmt: StreamFormat) -> dict[str, Any]:
    """Return csv.reader / csv.writer keyword arguments for ``fmt``."""
    params: dict[str, Any] = {"delimiter": fmt.field_sep or ";", "lineterminator": "\n"}
    if fmt.string_delim:
        params.update(quotechar=fmt.string_delim, quoting=csv.QUOTE_MINIMAL, doublequote=True)
    else:
        params.update(quoting=csv.QUOTE_NONE, escapechar="\\")
    return params


def sanitize_csv_field(value: str) -> str:
    """
    Prevent CSV injection by escaping formula characters.

    Ref: https://owasp.org/www-community/attacks/CSV_Injection

    Args:
        value: The field value to sanitize

    Returns:
        Sanitized value (prefixed with ' if dangerous)
    """
    if value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


class CSVRowWriter(RowWriter):
    """csv.writer over a text file opened with the format charset."""

    def __init__(self, handle: TextIO, fmt: StreamFormat, allow_formulas: bool = True) -> None:
        super().__init__()
        self._handle = handle
        self._writer = csv.writer(handle, **csv_dialect(fmt))
        self._substitute_dashes = not is_unicode(lookup_codec(fmt))
        self._allow_formulas = allow_formulas

    def _prepare(self, fields: list[str]) -> list[str]:
        prepared = []
        for value in fields:
            text = "" if value is None else str(value)
            if self._substitute_dashes:
                text = text.translate(_DASHES)
            if not self._allow_formulas:
                text = sanitize_csv_field(text)
            prepared.append(text)
        return prepared

    def write_header(self, headers: list[str]) -> None:
        self._writer.writerow(self._prepare(headers))

    def write_row(self, fields: list[str]) -> None:
        self._writer.writerow(self._prepare(fields))
        self.count += 1

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class CSVBackend(Backend):
    """
    CSV import/export backend.

    Args:
        inserts_while_parsing: Insert each converted chunk as soon as it
            is parsed, instead of after the whole file has been read
        allow_formulas: Write fields starting with a formula character as is
    """

    display_name = "CSV"
    version = "1.0"
    content_types = CSV_CONTENT_TYPES

    def __init__(self, inserts_while_parsing: bool = False, allow_formulas: bool = True) -> None:
        self.inserts_while_parsing = inserts_while_parsing
        self.allow_formulas = allow_formulas

    def parse(self, source: Path, fmt: StreamFormat) -> RowStream:
        text = read_text(source, fmt)
        lines = io.StringIO(text, newline="").readlines()
        logger.debug("CSV source read", source=str(source), lines=len(lines), charset=fmt.charset)
        return RowStream(self._rows(lines, fmt), total=len(lines))

    def _rows(self, lines: list[str], fmt: StreamFormat) -> Iterator[ParsedRow]:
        reader = csv.reader(lines, **csv_dialect(fmt))
        previous = 0
        while True:
            start = previous + 1
            try:
                fields = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                previous = reader.line_num
                yield ParsedRow(start, [], error=f"Malformed line: {e}")
                continue
            previous = reader.line_num
            if not fields or (len(fields) == 1 and not fields[0].strip()):
                continue
            yield ParsedRow(start, fields)

    def open_writer(self, sink: Path, fmt: StreamFormat) -> CSVRowWriter:
        handle = open_text(sink, fmt)
        logger.debug("CSV destination opened", sink=str(sink), charset=fmt.charset)
        return CSVRowWriter(handle, fmt, allow_formulas=self.allow_formulas)
