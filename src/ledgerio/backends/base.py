"""Backend contract: codecs turning files into rows and rows into files.

A backend declares the content types it accepts and whether it can parse,
write or both. Parsing opens the source eagerly, so that an unreadable file
fails with ResourceError before the engine reports any progress, and returns
a RowStream the engine pulls rows from chunk by chunk. Writing goes through a
RowWriter opened on the destination for the same reason.

Matching must never touch the file: ``accepts_content_type`` and
``supports_dataset`` are pure predicates.
"""

import codecs
from abc import ABC
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from ..constants import DEFAULT_CHARSET
from ..models.stream_format import Mode, StreamFormat
from ..utils.exceptions import ResourceError


def lookup_codec(fmt: StreamFormat, path: Path | None = None) -> codecs.CodecInfo:
    """
    Return the codec of the format charset.

    Raises:
        ResourceError: If the charset is unknown
    """
    try:
        return codecs.lookup(fmt.charset or DEFAULT_CHARSET)
    except LookupError as e:
        raise ResourceError(
            f"Unknown character set '{fmt.charset}'", path=str(path) if path else None
        ) from e


def is_unicode(codec: codecs.CodecInfo) -> bool:
    return codec.name.startswith("utf")


def read_text(path: Path, fmt: StreamFormat) -> str:
    """
    Read and decode the whole of ``path`` with the format charset.

    A UTF-8 byte order mark is dropped.

    Raises:
        ResourceError: If the file cannot be read or decoded
    """
    codec = lookup_codec(fmt, path)
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise ResourceError(f"Unable to read {path}: {e.strerror or e}", path=str(path)) from e

    encoding = "utf-8-sig" if codec.name == "utf-8" else codec.name
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise ResourceError(
            f"Unable to decode {path} as {fmt.charset}: {e.reason} at byte {e.start}",
            path=str(path),
        ) from e


def open_text(path: Path, fmt: StreamFormat) -> TextIO:
    """
    Open ``path`` for writing with the format charset.

    Characters the charset cannot represent are replaced.

    Raises:
        ResourceError: If the destination cannot be opened
    """
    codec = lookup_codec(fmt, path)
    path = Path(path)
    if path.is_dir():
        raise ResourceError(f"Destination is a directory: {path}", path=str(path))
    try:
        return open(path, "w", encoding=codec.name, errors="replace", newline="")
    except OSError as e:
        raise ResourceError(f"Unable to open {path}: {e.strerror or e}", path=str(path)) from e


@dataclass(frozen=True)
class ParsedRow:
    """
    One row read from a source.

    Attributes:
        line_number: 1-based physical line the row starts on
        fields: Ordered string fields
        error: Set when the line could not be split into fields
    """

    line_number: int
    fields: list[str]
    error: str | None = None


class RowStream:
    """
    Lazy sequence of ParsedRow over an opened source.

    ``total`` is the number of physical lines when the backend knows it
    cheaply, and ``position`` the number of lines consumed so far; together
    they drive parse progress.
    """

    def __init__(
        self,
        rows: Iterable[ParsedRow],
        total: int | None = None,
        close: Callable[[], None] | None = None,
    ) -> None:
        self._rows = iter(rows)
        self._close = close
        self.total = total
        self.position = 0

    def __iter__(self) -> Iterator[ParsedRow]:
        return self

    def __next__(self) -> ParsedRow:
        row = next(self._rows)
        self.position = max(self.position, row.line_number)
        return row

    @property
    def fraction(self) -> float | None:
        if not self.total:
            return None
        return min(self.position / self.total, 1.0)

    def close(self) -> None:
        if self._close is not None:
            self._close()
            self._close = None

    def __enter__(self) -> "RowStream":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class RowWriter(ABC):
    """Destination opened for writing; counts the data rows it writes."""

    def __init__(self) -> None:
        self.count = 0

    def write_header(self, headers: list[str]) -> None:
        raise NotImplementedError

    def write_row(self, fields: list[str]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "RowWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class Backend(ABC):
    """
    Base class for file-format backends.

    Subclasses set ``display_name``, ``version`` and ``content_types`` and
    override ``parse`` and/or ``open_writer``.
    """

    display_name: str = ""
    version: str = "1.0"
    content_types: tuple[str, ...] = ()

    # When True the engine hands each converted chunk to the dataset as soon
    # as it is parsed instead of running a separate insert phase
    inserts_while_parsing: bool = False

    def accepts_content_type(self, content_type: str | None) -> bool:
        """Whether this backend handles ``content_type``. Performs no I/O."""
        if not content_type:
            return False
        # "text/csv; charset=utf-8" -> "text/csv"
        base = content_type.split(";", 1)[0].strip().lower()
        return base in self.content_types

    def supports_dataset(self, type_id: str) -> bool:
        """Whether this backend may be used with the ``type_id`` dataset."""
        return True

    def default_format(self, mode: Mode) -> StreamFormat | None:
        """
        Format this backend proposes when the user saved none.

        Returns:
            StreamFormat, or None to use the hard defaults
        """
        return None

    @property
    def can_parse(self) -> bool:
        return type(self).parse is not Backend.parse

    @property
    def can_write(self) -> bool:
        return type(self).open_writer is not Backend.open_writer

    def supports(self, mode: Mode) -> bool:
        return self.can_parse if Mode(mode) == Mode.IMPORT else self.can_write

    def parse(self, source: Path, fmt: StreamFormat) -> RowStream:
        """
        Open ``source`` and return its rows, header rows included.

        Raises:
            ResourceError: If the source cannot be opened or decoded
        """
        raise NotImplementedError(f"{self.display_name} cannot parse")

    def open_writer(self, sink: Path, fmt: StreamFormat) -> RowWriter:
        """
        Open ``sink`` for writing.

        Raises:
            ResourceError: If the destination cannot be opened
        """
        raise NotImplementedError(f"{self.display_name} cannot write")

    def write(
        self,
        rows: Iterable[list[str]],
        sink: Path,
        fmt: StreamFormat,
        headers: list[str] | None = None,
    ) -> int:
        """
        Write ``rows`` to ``sink`` in one go.

        The header row is written first when ``headers`` is given and the
        format asks for it.

        Returns:
            Number of data rows written
        """
        with self.open_writer(sink, fmt) as writer:
            if headers and fmt.with_headers:
                writer.write_header(headers)
            for row in rows:
                writer.write_row(row)
        return writer.count

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.display_name} {self.version}>"
