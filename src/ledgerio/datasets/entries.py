"""Journal entries dataset."""

from collections.abc import Hashable, Iterator, Sequence
from datetime import date
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from ..models.results import Conversion
from ..models.stream_format import StreamFormat
from ..utils.exceptions import RecordError
from .accounts import AccountDataset, strip_text, strip_whitespace
from .base import format_validation_error
from .memory import InMemoryDataset

CENT = Decimal("0.01")


class EntryRecord(BaseModel):
    """
    One line of a journal entry: a debit or a credit on a single account.

    Example:
        number;date;journal;account;label;debit;credit
        42;2024-01-05;BQ;512;Customer payment;120.00;
    """

    model_config = ConfigDict(frozen=True)

    number: Annotated[int, Field(gt=0)]
    booked_on: date
    journal: Annotated[str, BeforeValidator(strip_whitespace)]
    account: Annotated[str, BeforeValidator(strip_whitespace)]
    label: Annotated[str, Field(default=""), BeforeValidator(strip_text)]
    debit: Decimal | None = None
    credit: Decimal | None = None

    @model_validator(mode="after")
    def validate_amount(self) -> "EntryRecord":
        """Exactly one of debit and credit is set, and it is not negative."""
        if (self.debit is None) == (self.credit is None):
            raise ValueError("exactly one of debit and credit must be set")
        amount = self.debit if self.debit is not None else self.credit
        if amount < 0:
            raise ValueError(f"amount cannot be negative: {amount}")
        # Amounts are exported with two decimals
        if amount != amount.quantize(CENT):
            raise ValueError(f"amount has more than 2 decimal places: {amount}")
        return self

    @property
    def amount(self) -> Decimal:
        """Signed amount, positive for a debit."""
        return self.debit if self.debit is not None else -self.credit


class EntryDataset(InMemoryDataset):
    """
    In-memory journal entries, booked against an AccountDataset.

    Entries whose account is unknown or closed are rejected at insert time.
    """

    type_id = "Entry"
    label = "Journal entries"

    COLUMNS = ["number", "date", "journal", "account", "label", "debit", "credit"]

    def __init__(self, accounts: AccountDataset) -> None:
        super().__init__()
        self.accounts = accounts

    def headers(self) -> list[str]:
        return list(self.COLUMNS)

    def key(self, record: EntryRecord) -> Hashable:
        return (record.number, record.account)

    def check(self, record: EntryRecord) -> str | None:
        account = self.accounts.get(record.account)
        if account is None:
            return f"Unknown account '{record.account}' in entry {record.number}"
        if account.closed:
            return f"Account '{record.account}' is closed"
        return None

    def balance(self, account: str) -> Decimal:
        """Sum of the signed amounts booked on ``account``."""
        return sum(
            (entry.amount for entry in self.records.values() if entry.account == account),
            Decimal("0"),
        )

    def produce_rows(self, fmt: StreamFormat) -> Iterator[list[str]]:
        for entry in self.records.values():
            yield [
                str(entry.number),
                fmt.format_date(entry.booked_on),
                entry.journal,
                entry.account,
                entry.label,
                fmt.format_amount(entry.debit),
                fmt.format_amount(entry.credit),
            ]

    def convert_row(self, fields: Sequence[str], fmt: StreamFormat) -> Conversion:
        if len(fields) != len(self.COLUMNS):
            raise RecordError(f"Expected {len(self.COLUMNS)} fields, found {len(fields)}")

        number, when, journal, account, label, debit, credit = fields

        try:
            entry_date = fmt.parse_date(when)
        except ValueError as e:
            raise RecordError(f"date: {e}") from e
        if entry_date is None:
            raise RecordError("date: value is required")

        amounts: dict[str, Decimal | None] = {}
        for column, text in (("debit", debit), ("credit", credit)):
            try:
                amounts[column] = fmt.parse_amount(text)
            except ValueError as e:
                raise RecordError(f"{column}: {e}") from e

        warnings: list[str] = []
        for column, value in amounts.items():
            if value is not None and value == 0:
                # A zero amount on one side is the same as an empty column
                amounts[column] = None
                warnings.append(f"Zero {column} ignored")

        values: dict[str, Any] = {
            "number": number.strip(),
            "booked_on": entry_date,
            "journal": journal,
            "account": account,
            "label": label,
            **amounts,
        }
        try:
            record = EntryRecord(**values)
        except ValidationError as e:
            raise RecordError(format_validation_error(e)) from e

        return Conversion(record, warnings)
