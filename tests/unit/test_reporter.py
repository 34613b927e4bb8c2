"""Unit tests for ReportGenerator."""

import json
from datetime import datetime

import pytest
from rich.console import Console

from src.ledgerio.backends.csv_backend import CSVBackend
from src.ledgerio.models.results import Diagnostic, Report, Severity
from src.ledgerio.models.session import ExportSession, ImportSession, SessionStatus
from src.ledgerio.models.stream_format import Mode, StreamFormat
from src.ledgerio.observability.reporter import ReportGenerator, SessionReport, report_status

START = datetime(2024, 3, 1, 12, 0, 0)
END = datetime(2024, 3, 1, 12, 0, 4)


@pytest.fixture
def reporter():
    """Create a reporter instance."""
    return ReportGenerator()


@pytest.fixture
def finished_import(chart, tmp_path):
    """Import session that inserted 8 records and rejected 2."""
    session = ImportSession(
        path=tmp_path / "accounts.csv",
        capability=chart,
        backend=CSVBackend(),
        stream_format=StreamFormat.default(Mode.IMPORT, "Account"),
        status=SessionStatus.DONE,
    )
    session.diagnostics = [
        Diagnostic(0, Severity.INFO, "3 existing records deleted"),
        Diagnostic(4, Severity.WARNING, "Currency 'eur' converted to upper case"),
        Diagnostic(7, Severity.ERROR, "Unknown parent account '99' for account '999'"),
        Diagnostic(9, Severity.ERROR, "Expected 6 fields, found 2"),
    ]
    session.report = Report(
        record_count=8, error_count=2, warning_count=1, parsed_count=9, rejected_count=1
    )
    return session


class TestReportStatus:
    """Test the status derived from a report."""

    @pytest.mark.parametrize(
        "report, expected",
        [
            (Report(record_count=3), "completed"),
            (Report(record_count=3, error_count=1), "partial"),
            (Report(error_count=1), "failed"),
            (Report(record_count=3, cancelled=True), "cancelled"),
        ],
    )
    def test_report_status(self, report, expected):
        assert report_status(report) == expected


class TestGenerateReport:
    """Test building SessionReport objects."""

    def test_generate_report(self, reporter, finished_import, tmp_path):
        """Test generating report object."""
        report = reporter.generate_report(finished_import, "a1b2c3", START, END)

        assert isinstance(report, SessionReport)
        assert report.session_id == "a1b2c3"
        assert report.mode == "Import"
        assert report.status == "partial"
        assert report.path == str(tmp_path / "accounts.csv")
        assert report.dataset == "Account"
        assert report.backend == "CSV 1.0"
        assert report.format == "Account"
        assert report.duration_seconds == 4.0
        assert report.records_per_second == 2.0
        assert report.parsed_count == 9
        assert report.rejected_count == 1
        assert len(report.diagnostics) == 4
        assert report.diagnostics[2] == {
            "line": 7,
            "severity": "error",
            "message": "Unknown parent account '99' for account '999'",
        }

    def test_failed_session(self, reporter, chart, tmp_path):
        """A session that failed on I/O has no report but is still summarised."""
        session = ExportSession(path=tmp_path / "out.csv", capability=chart, status=SessionStatus.FAILED)

        report = reporter.generate_report(session, "x", START, START)

        assert report.status == "failed"
        assert report.record_count == 0
        assert report.backend is None
        assert report.records_per_second == 0.0


class TestWriteJsonReport:
    """Test JSON output."""

    def test_write_json_report(self, reporter, finished_import, tmp_path):
        """Test writing JSON report, creating missing folders."""
        report = reporter.generate_report(finished_import, "a1b2c3", START, END)
        output = tmp_path / "reports" / "session.json"

        reporter.write_json_report(report, output)

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["session_id"] == "a1b2c3"
        assert data["status"] == "partial"
        assert data["error_count"] == 2
        assert data["diagnostics"][0]["severity"] == "info"


class TestPrintSummary:
    """Test console output."""

    @pytest.fixture
    def console(self):
        return Console(record=True, width=120)

    def test_import_summary(self, reporter, finished_import, console):
        report = reporter.generate_report(finished_import, "a1b2c3", START, END)

        reporter.print_summary(report, console)

        output = console.export_text()
        assert "Import Summary" in output
        assert "Records inserted" in output
        assert "partial" in output
        assert "Unknown parent account '99'" in output
        # Info diagnostics are not listed
        assert "existing records deleted" not in output

    def test_export_summary(self, reporter, chart, console, tmp_path):
        session = ExportSession(path=tmp_path / "out.csv", capability=chart, status=SessionStatus.DONE)
        session.report = Report(record_count=5)

        reporter.print_summary(reporter.generate_report(session, "x", START, END), console)

        output = console.export_text()
        assert "Rows written" in output
        assert "Records inserted" not in output
        assert "Diagnostics" not in output

    def test_diagnostics_truncated(self, reporter, finished_import, console):
        report = reporter.generate_report(finished_import, "a1b2c3", START, END)

        reporter.print_summary(report, console, max_diagnostics=1)

        assert "... and 2 more" in console.export_text()

    def test_markup_in_messages_is_escaped(self, reporter, finished_import, console):
        finished_import.diagnostics = [Diagnostic(2, Severity.ERROR, "Invalid label '[bold]x'")]

        reporter.print_summary(reporter.generate_report(finished_import, "a", START, END), console)

        assert "[bold]x" in console.export_text()
