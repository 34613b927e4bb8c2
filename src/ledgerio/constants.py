"""Configuration constants for the ledgerio import/export engine.

Named defaults for stream formats, content types and engine tuning.
"""

# -----------------------------------------------------------------------------
# Stream Format Defaults
# -----------------------------------------------------------------------------

# Name given to a stream format when the caller does not provide one
DEFAULT_FORMAT_NAME: str = "Default"

DEFAULT_CHARSET: str = "UTF-8"
DEFAULT_DECIMAL_SEP: str = "."
DEFAULT_FIELD_SEP: str = ";"
DEFAULT_STRING_DELIM: str = '"'

# Export writes a header row; import skips that many leading rows
DEFAULT_WITH_HEADERS: bool = True
DEFAULT_COUNT_HEADERS: int = 1

# Settings key for a named format, e.g. "Account-Import-format"
FORMAT_KEY_TEMPLATE: str = "{name}-{mode}-format"


# -----------------------------------------------------------------------------
# Content Types
# -----------------------------------------------------------------------------

OCTET_STREAM: str = "application/octet-stream"

CSV_CONTENT_TYPES: tuple[str, ...] = (
    "text/csv",
    "text/plain",
    "application/csv",
    "text/tab-separated-values",
    "application/vnd.ms-excel",
)

RAW_CONTENT_TYPES: tuple[str, ...] = ("text/plain",)

# Magic prefixes of formats that are never tabular text
BINARY_SIGNATURES: dict[bytes, str] = {
    b"%PDF": "application/pdf",
    b"PK\x03\x04": "application/zip",
    b"\x89PNG": "image/png",
    b"\xff\xd8\xff": "image/jpeg",
    b"\x1f\x8b": "application/gzip",
}


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------

# Number of records handed to a dataset per insert call
DEFAULT_CHUNK_SIZE: int = 50

# Settings scopes for remembered folders
LAST_IMPORT_SCOPE: str = "LastImportFolder"
LAST_EXPORT_SCOPE: str = "LastExportFolder"
