"""File-format backends."""

from .base import Backend, ParsedRow, RowStream, RowWriter
from .csv_backend import CSVBackend
from .raw_backend import RawLinesBackend

__all__ = ["Backend", "ParsedRow", "RowStream", "RowWriter", "CSVBackend", "RawLinesBackend"]
