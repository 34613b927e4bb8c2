"""Chart of accounts dataset."""

from collections.abc import Hashable, Iterator, Sequence
from datetime import date
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from ..models.results import Conversion
from ..models.stream_format import StreamFormat
from ..utils.exceptions import RecordError
from .base import format_validation_error
from .memory import InMemoryDataset

_TRUE_VALUES = frozenset({"1", "true", "yes", "y", "x"})
_FALSE_VALUES = frozenset({"", "0", "false", "no", "n"})


def strip_whitespace(v: Any) -> Any:
    """Strip string values, mapping blank strings to None."""
    if isinstance(v, str):
        return v.strip() or None
    return v


def strip_text(v: Any) -> Any:
    """Strip string values, keeping blank strings as ''."""
    if isinstance(v, str):
        return v.strip()
    return v


def parse_flag(text: str) -> bool:
    """
    Parse a boolean column.

    Raises:
        ValueError: If the text is not a recognised flag
    """
    value = text.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid flag '{text}'")


class AccountRecord(BaseModel):
    """
    One account of the chart of accounts.

    Example:
        code;label;currency;parent;opened_on;closed
        512;Bank;EUR;51;2024-01-01;0
    """

    model_config = ConfigDict(frozen=True)

    code: Annotated[str, BeforeValidator(strip_whitespace)]
    label: Annotated[str, BeforeValidator(strip_whitespace)]
    currency: Annotated[str, Field(default="EUR"), BeforeValidator(strip_whitespace)]
    parent: Annotated[str | None, Field(default=None), BeforeValidator(strip_whitespace)]
    opened_on: date | None = None
    closed: bool = False

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("account code cannot contain whitespace")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"invalid currency code '{v}'")
        return v.upper()


class AccountDataset(InMemoryDataset):
    """
    In-memory chart of accounts.

    An account may reference a parent account by code; the parent must
    already exist, either in the dataset or earlier in the same import.
    """

    type_id = "Account"
    label = "Accounts"

    COLUMNS = ["code", "label", "currency", "parent", "opened_on", "closed"]

    def headers(self) -> list[str]:
        return list(self.COLUMNS)

    def key(self, record: AccountRecord) -> Hashable:
        return record.code

    def check(self, record: AccountRecord) -> str | None:
        if record.parent is None:
            return None
        if record.parent == record.code:
            return f"Account '{record.code}' cannot be its own parent"
        if record.parent not in self.records:
            return f"Unknown parent account '{record.parent}' for account '{record.code}'"
        return None

    def get(self, code: str) -> AccountRecord | None:
        return self.records.get(code)

    def add(self, **values: Any) -> AccountRecord:
        """Create an account directly, bypassing import."""
        record = AccountRecord(**values)
        self.records[record.code] = record
        return record

    def produce_rows(self, fmt: StreamFormat) -> Iterator[list[str]]:
        for account in self.records.values():
            yield [
                account.code,
                account.label,
                account.currency,
                account.parent or "",
                fmt.format_date(account.opened_on),
                "1" if account.closed else "0",
            ]

    def convert_row(self, fields: Sequence[str], fmt: StreamFormat) -> Conversion:
        if len(fields) != len(self.COLUMNS):
            raise RecordError(f"Expected {len(self.COLUMNS)} fields, found {len(fields)}")

        code, label, currency, parent, opened_on, closed = fields
        warnings: list[str] = []

        try:
            opened = fmt.parse_date(opened_on)
        except ValueError as e:
            raise RecordError(f"opened_on: {e}") from e
        try:
            is_closed = parse_flag(closed)
        except ValueError as e:
            raise RecordError(f"closed: {e}") from e

        if currency.strip() and currency.strip() != currency.strip().upper():
            warnings.append(f"Currency '{currency.strip()}' converted to upper case")

        values: dict[str, Any] = {
            "code": code,
            "label": label,
            "parent": parent,
            "opened_on": opened,
            "closed": is_closed,
        }
        if currency.strip():
            values["currency"] = currency

        try:
            record = AccountRecord(**values)
        except ValidationError as e:
            raise RecordError(format_validation_error(e)) from e

        return Conversion(record, warnings)
