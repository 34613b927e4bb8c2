"""Stream format: the dialect of a tabular file.

A StreamFormat tells backends how to read or write a file: character set,
date format, numeric separators, field separator, string delimiter and header
policy. The header policy depends on the mode:

- Export: ``with_headers`` (emit a header row or not)
- Import: ``count_headers`` (number of leading rows to skip)

Only the field relevant to the mode is meaningful; the other one is
normalized away on construction.

Formats are persisted by name through a settings store, under the key
``"<name>-<Mode>-format"``. Loading never fails: a missing or unreadable
entry falls back to the hard defaults for the mode.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from ..constants import (
    DEFAULT_CHARSET,
    DEFAULT_COUNT_HEADERS,
    DEFAULT_DECIMAL_SEP,
    DEFAULT_FIELD_SEP,
    DEFAULT_FORMAT_NAME,
    DEFAULT_STRING_DELIM,
    DEFAULT_WITH_HEADERS,
    FORMAT_KEY_TEMPLATE,
)
from ..utils.exceptions import ConfigurationError, SettingsError

if TYPE_CHECKING:
    from ..persistence.settings import SettingsStore

logger = structlog.get_logger(__name__)


class Mode(str, Enum):
    """Direction a stream format is used for."""

    IMPORT = "Import"
    EXPORT = "Export"


class FormatKind(str, Enum):
    """How the backend interprets the stream."""

    CSV = "csv"  # Delimited text driven by the separators below
    OTHER = "other"  # Opaque, backend-managed: passed through uninterpreted


class DateFormat(str, Enum):
    """Supported date representations."""

    DMMM = "dmmm"  # 5 jan. 2024
    DMY = "dmy"  # 05/01/2024
    SQL = "sql"  # 2024-01-05
    YYMD = "yymd"  # 20240105


_MONTHS = (
    "jan.",
    "feb.",
    "mar.",
    "apr.",
    "may",
    "jun.",
    "jul.",
    "aug.",
    "sept.",
    "oct.",
    "nov.",
    "dec.",
)

_STRPTIME = {
    DateFormat.DMY: "%d/%m/%Y",
    DateFormat.SQL: "%Y-%m-%d",
    DateFormat.YYMD: "%Y%m%d",
}

_SEPARATORS = ("thousand_sep", "decimal_sep", "field_sep", "string_delim")


def format_key(name: str, mode: Mode) -> str:
    """Return the settings key of the ``name`` format for ``mode``."""
    return FORMAT_KEY_TEMPLATE.format(name=name, mode=Mode(mode).value)


@dataclass
class StreamFormat:
    """
    Description of a tabular encoding.

    Attributes:
        name: Identifies the saved preference (defaults to "Default")
        mode: Import or Export
        kind: CSV, or OTHER for backend-managed opaque streams
        charset: Character set name (e.g. "UTF-8")
        date_format: How dates are written and read
        thousand_sep: Thousand separator, or None
        decimal_sep: Decimal separator, or None
        field_sep: Field separator, or None
        string_delim: String delimiter (quote char), or None
        with_headers: Export only, whether a header row is written
        count_headers: Import only, how many leading rows are skipped
        updatable: Whether the host may let the user edit this format
    """

    name: str = DEFAULT_FORMAT_NAME
    mode: Mode = Mode.EXPORT
    kind: FormatKind = FormatKind.CSV
    charset: str | None = DEFAULT_CHARSET
    date_format: DateFormat | None = DateFormat.SQL
    thousand_sep: str | None = None
    decimal_sep: str | None = DEFAULT_DECIMAL_SEP
    field_sep: str | None = DEFAULT_FIELD_SEP
    string_delim: str | None = DEFAULT_STRING_DELIM
    with_headers: bool = False
    count_headers: int = 0
    updatable: bool = True
    frozen: bool = field(default=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name or DEFAULT_FORMAT_NAME)
        object.__setattr__(self, "mode", Mode(self.mode))
        object.__setattr__(self, "kind", FormatKind(self.kind))
        if self.date_format is not None:
            object.__setattr__(self, "date_format", DateFormat(self.date_format))
        for attr in _SEPARATORS:
            value = getattr(self, attr)
            if value == "":
                object.__setattr__(self, attr, None)
            elif value is not None and len(value) != 1:
                label = attr.replace("_", " ").capitalize()
                raise ConfigurationError(f"{label} must be a single character, got '{value}'")
        # The header policy representation not used by this mode is dropped
        if self.mode == Mode.EXPORT:
            object.__setattr__(self, "count_headers", 0)
        else:
            object.__setattr__(self, "with_headers", False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "frozen", False):
            raise AttributeError(f"StreamFormat '{self.name}' is a read-only snapshot")
        super().__setattr__(name, value)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def default(cls, mode: Mode, name: str | None = None) -> "StreamFormat":
        """
        Build the hard-coded default format for ``mode``.

        Args:
            mode: Import or Export
            name: Optional format name (defaults to "Default")

        Returns:
            StreamFormat with default values
        """
        return cls(
            name=name or DEFAULT_FORMAT_NAME,
            mode=mode,
            with_headers=DEFAULT_WITH_HEADERS,
            count_headers=DEFAULT_COUNT_HEADERS,
        )

    @classmethod
    def load(
        cls, settings: "SettingsStore | None", name: str | None, mode: Mode
    ) -> "StreamFormat":
        """
        Load the named format from settings, falling back to the defaults.

        Absence is not an error, and neither is an unreadable store: both
        return the default format for ``mode``.

        Args:
            settings: Settings store (may be None)
            name: Format name (None means "Default")
            mode: Import or Export

        Returns:
            StreamFormat instance
        """
        name = name or DEFAULT_FORMAT_NAME
        if settings is not None:
            try:
                stored = settings.load_format(format_key(name, mode), mode)
            except SettingsError as e:
                logger.warning("Unable to read stream format", name=name, error=str(e))
                stored = None
            if stored is not None:
                stored.name = name
                return stored
        return cls.default(mode, name)

    @classmethod
    def exists(cls, settings: "SettingsStore", name: str, mode: Mode) -> bool:
        """Whether the ``name``/``mode`` format is defined in ``settings``."""
        try:
            return settings.load_format(format_key(name, mode), mode) is not None
        except SettingsError:
            return False

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str, mode: Mode) -> "StreamFormat":
        """
        Rebuild a format from its persisted dictionary.

        Unknown keys are ignored; missing keys take their default value.
        """
        known = {f.name for f in fields(cls)} - {"name", "mode", "frozen"}
        values = {k: v for k, v in data.items() if k in known}
        headers = data.get("headers")
        if headers is not None:
            if Mode(mode) == Mode.EXPORT:
                values["with_headers"] = bool(headers)
            else:
                values["count_headers"] = int(headers)
        return cls(name=name, mode=mode, **values)

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted representation of this format."""
        data = asdict(self)
        for key in ("name", "mode", "frozen", "with_headers", "count_headers"):
            data.pop(key)
        data["kind"] = self.kind.value
        data["date_format"] = self.date_format.value if self.date_format else None
        data["headers"] = self.header_policy
        return data

    def snapshot(self) -> "StreamFormat":
        """Return a read-only copy, as held by the engine during execution."""
        copy = replace(self, frozen=False)
        object.__setattr__(copy, "frozen", True)
        return copy

    # -------------------------------------------------------------------------
    # Indicators
    # -------------------------------------------------------------------------

    @property
    def is_other(self) -> bool:
        return self.kind == FormatKind.OTHER

    @property
    def has_charset(self) -> bool:
        return bool(self.charset)

    @property
    def has_date_format(self) -> bool:
        return self.date_format is not None

    @property
    def has_thousand_sep(self) -> bool:
        return self.thousand_sep is not None

    @property
    def has_decimal_sep(self) -> bool:
        return self.decimal_sep is not None

    @property
    def has_field_sep(self) -> bool:
        return self.field_sep is not None

    @property
    def has_string_delim(self) -> bool:
        return self.string_delim is not None

    @property
    def header_policy(self) -> bool | int:
        """``with_headers`` on export, ``count_headers`` on import."""
        if self.mode == Mode.EXPORT:
            return self.with_headers
        return self.count_headers

    @property
    def headers_count(self) -> int:
        """Number of header rows in the stream, whatever the mode."""
        if self.mode == Mode.EXPORT:
            return 1 if self.with_headers else 0
        return self.count_headers

    @property
    def key(self) -> str:
        return format_key(self.name, self.mode)

    # -------------------------------------------------------------------------
    # Validation and persistence
    # -------------------------------------------------------------------------

    def validate(self) -> tuple[bool, str | None]:
        """
        Check that the format is usable.

        OTHER formats are opaque and always valid. Otherwise the charset,
        date format, decimal separator and field separator must be set,
        and the decimal separator must differ from the field separator.

        Returns:
            (ok, message) where message explains the first failure
        """
        if self.is_other:
            return True, None

        if not self.has_charset:
            return False, "Characters encoding type is unknown or invalid"
        if not self.has_date_format:
            return False, "Date format is unknown or invalid"
        if not self.has_decimal_sep:
            return False, "Decimal separator is unknown or invalid"
        if not self.has_field_sep:
            return False, "Field separator is unknown or invalid"

        if self.decimal_sep == self.field_sep:
            return False, "Decimal separator and field separator must differ"

        if self.mode == Mode.IMPORT and self.count_headers < 0:
            return False, "Headers count must be zero or positive"

        return True, None

    def apply(self, settings: "SettingsStore | None", **values: Any) -> tuple[bool, str | None]:
        """
        Commit candidate values and persist the format.

        Persistence is best-effort: a failing store is reported in the
        returned tuple and logged, but the in-memory values are kept.

        Args:
            settings: Settings store (None only updates the instance)
            **values: Candidate attribute values (e.g. field_sep=",")

        Returns:
            (ok, message) where ok is False if persistence failed

        Raises:
            ConfigurationError: If an unknown attribute or an invalid separator is given
        """
        allowed = {f.name for f in fields(self)} - {"mode", "frozen"}
        unknown = set(values) - allowed
        if unknown:
            raise ConfigurationError(f"Unknown stream format attributes: {', '.join(sorted(unknown))}")
        if self.frozen:
            raise ConfigurationError(f"StreamFormat '{self.name}' is a read-only snapshot")

        candidate = replace(self, **values)
        for f in fields(self):
            if f.name != "frozen":
                setattr(self, f.name, getattr(candidate, f.name))

        if settings is None:
            return True, None

        try:
            settings.save_format(self.key, self)
        except (SettingsError, OSError) as e:
            logger.warning("Unable to save stream format", key=self.key, error=str(e))
            return False, f"Unable to save '{self.key}': {e}"

        logger.debug("Stream format saved", key=self.key)
        return True, None

    # -------------------------------------------------------------------------
    # Value helpers
    # -------------------------------------------------------------------------

    def format_date(self, value: date | None) -> str:
        """Render ``value`` according to the date format ('' if None)."""
        if value is None:
            return ""
        if self.date_format == DateFormat.DMMM:
            return f"{value.day} {_MONTHS[value.month - 1]} {value.year:04d}"
        return value.strftime(_STRPTIME[self.date_format or DateFormat.SQL])

    def parse_date(self, text: str) -> date | None:
        """
        Parse a date written with the date format.

        Returns:
            date, or None for an empty string

        Raises:
            ValueError: If the text does not match the date format
        """
        text = text.strip()
        if not text:
            return None
        if self.date_format == DateFormat.DMMM:
            parts = text.split()
            if len(parts) != 3 or parts[1].lower() not in _MONTHS:
                raise ValueError(f"invalid date '{text}'")
            return date(int(parts[2]), _MONTHS.index(parts[1].lower()) + 1, int(parts[0]))
        return datetime.strptime(text, _STRPTIME[self.date_format or DateFormat.SQL]).date()

    def format_amount(self, value: Decimal | None, digits: int = 2) -> str:
        """Render ``value`` with the thousand and decimal separators."""
        if value is None:
            return ""
        text = f"{value:,.{digits}f}"
        integral, _, fraction = text.partition(".")
        integral = integral.replace(",", self.thousand_sep or "")
        if not fraction:
            return integral
        return f"{integral}{self.decimal_sep or '.'}{fraction}"

    def parse_amount(self, text: str) -> Decimal | None:
        """
        Parse an amount written with the thousand and decimal separators.

        Returns:
            Decimal, or None for an empty string

        Raises:
            ValueError: If the text is not a number
        """
        text = text.strip()
        if not text:
            return None
        if self.thousand_sep:
            text = text.replace(self.thousand_sep, "")
        if self.decimal_sep and self.decimal_sep != ".":
            text = text.replace(self.decimal_sep, ".")
        try:
            return Decimal(text)
        except InvalidOperation as e:
            raise ValueError(f"invalid amount '{text}'") from e
