"""Integration tests for the import workflow.

Drives the SessionController page by page, as a host would, then lets the
execution engine import into the reference datasets.
"""

from decimal import Decimal

import pytest

from src.ledgerio.core.controller import SessionController, SessionState
from src.ledgerio.core.registry import default_registry
from src.ledgerio.datasets import AccountDataset, EntryDataset
from src.ledgerio.models.results import Severity
from src.ledgerio.models.stream_format import DateFormat, Mode, StreamFormat
from src.ledgerio.observability.progress import CollectingSink
from src.ledgerio.persistence.settings import YamlSettings

ACCOUNTS = """code;label;currency;parent;opened_on;closed
4;Third parties;EUR;;01/01/2024;0
411;Customers;EUR;4;01/01/2024;0
5;Financial accounts;EUR;;01/01/2024;0
512;Bank;EUR;5;01/01/2024;0
530;Cash;EUR;5;01/01/2024;1
7;Revenue;EUR;;01/01/2024;0
706;Services;EUR;7;01/01/2024;0
"""

ENTRIES = """number;date;journal;account;label;debit;credit
1;05/01/2024;VT;411;"Invoice 2024-001; consulting";1 200,00;
1;05/01/2024;VT;706;"Invoice 2024-001; consulting";;1 200,00
2;20/01/2024;BQ;512;Payment 2024-001;1 200,00;
2;20/01/2024;BQ;411;Payment 2024-001;;1 200,00
3;21/01/2024;CA;530;Petty cash;10,00;
3;21/01/2024;CA;706;Petty cash;;10,00
4;22/01/2024;BQ;999;Unknown;5,00;
"""


@pytest.fixture
def book():
    accounts = AccountDataset()
    return accounts, EntryDataset(accounts)


@pytest.fixture
def settings(tmp_path):
    return YamlSettings(tmp_path / "settings.yaml")


def run_import(registry, settings, path, dataset, **format_values):
    controller = SessionController(registry, Mode.IMPORT, settings=settings, chunk_size=3)
    controller.set_source(path)
    controller.forward()
    controller.select_capability(dataset)
    controller.forward()
    controller.forward()
    if format_values:
        controller.update_format(**format_values)
    assert controller.forward() == SessionState.CONFIRMED

    sink = CollectingSink()
    report = controller.execute(sink)
    return controller, report, sink


class TestImportWorkflow:
    """Test chart of accounts then journal import."""

    def test_accounts_then_entries(self, book, settings, tmp_path):
        accounts, entries = book
        registry = default_registry([accounts, entries])
        (tmp_path / "accounts.csv").write_text(ACCOUNTS, encoding="utf-8")
        (tmp_path / "entries.csv").write_text(ENTRIES, encoding="utf-8")

        _, report, _ = run_import(
            registry, settings, tmp_path / "accounts.csv", "Account", date_format=DateFormat.DMY
        )
        assert (report.record_count, report.error_count) == (7, 0)

        controller, report, sink = run_import(
            registry,
            settings,
            tmp_path / "entries.csv",
            "Entry",
            date_format=DateFormat.DMY,
            decimal_sep=",",
            thousand_sep=" ",
        )

        assert controller.state == SessionState.DONE
        assert report.record_count == 5
        assert [(d.line_number, d.message) for d in sink.errors] == [
            (6, "Account '530' is closed"),
            (8, "Unknown account '999' in entry 4"),
        ]
        assert entries.balance("411") == Decimal("0")
        assert entries.balance("512") == Decimal("1200.00")
        assert entries.balance("706") == Decimal("-1210.00")
        assert controller.session.diagnostics == sink.diagnostics

    def test_saved_format_reused_by_next_session(self, book, settings, tmp_path):
        accounts, entries = book
        registry = default_registry([accounts, entries])
        source = tmp_path / "accounts.csv"
        source.write_text(ACCOUNTS, encoding="utf-8")

        run_import(registry, settings, source, "Account", date_format=DateFormat.DMY)

        reloaded = StreamFormat.load(YamlSettings(tmp_path / "settings.yaml"), "Account", Mode.IMPORT)
        assert reloaded.date_format == DateFormat.DMY
        assert settings.load_last_path("LastImportFolder") == str(tmp_path.resolve())

        # Same file again: every account is now a duplicate
        _, report, sink = run_import(registry, settings, source, "Account")
        assert report.record_count == 0
        assert report.duplicate_count == 7
        assert all(d.severity == Severity.ERROR for d in sink.diagnostics)

    def test_replace_and_empty_options(self, book, settings, tmp_path):
        accounts, entries = book
        registry = default_registry([accounts, entries])
        source = tmp_path / "accounts.csv"
        source.write_text(ACCOUNTS, encoding="utf-8")
        run_import(registry, settings, source, "Account", date_format=DateFormat.DMY)

        smaller = tmp_path / "smaller.csv"
        smaller.write_text("code;label;currency;parent;opened_on;closed\n6;Expenses;EUR;;;0\n", encoding="utf-8")
        controller = SessionController(registry, Mode.IMPORT, settings=settings)
        controller.set_source(smaller)
        while controller.state != SessionState.CONFIRMED:
            if controller.state == SessionState.DATASET_CHOSEN:
                controller.select_capability("Account")
            if controller.state == SessionState.FORMAT_CONFIGURED:
                controller.set_options(empty_before_insert=True)
            controller.forward()

        report = controller.execute()

        assert report.record_count == 1
        assert [a.code for a in accounts] == ["6"]
        assert controller.session.diagnostics[0].message == "7 existing records deleted"

    def test_raw_lines_backend_chosen_by_host(self, book, settings, tmp_path):
        accounts, entries = book
        registry = default_registry([accounts, entries])
        source = tmp_path / "codes.txt"
        source.write_text("6\n7\n", encoding="utf-8")

        controller = SessionController(registry, Mode.IMPORT, settings=settings)
        controller.set_source(source)
        controller.forward()
        controller.select_capability("Account")
        controller.forward()

        assert [b.display_name for b in controller.resolved_backends] == ["CSV", "Raw lines"]
        controller.select_backend("Raw lines")
        controller.forward()
        controller.forward()
        report = controller.execute()

        # One field per line cannot make an account
        assert report.record_count == 0
        assert report.error_count == 2
