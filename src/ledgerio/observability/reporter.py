"""Session Report Generator.

Generates JSON reports and console summaries for import and export sessions.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models.results import Report, Severity
from ..models.session import Session, SessionStatus

logger = structlog.get_logger(__name__)


@dataclass
class SessionReport:
    """
    Structured report data for a session.

    Attributes:
        session_id: Session identifier
        mode: Import or Export
        status: Final status (completed, partial, failed, cancelled)
        start_time: Start timestamp
        end_time: End timestamp
        duration_seconds: Total duration
        path: Source or destination file
        dataset: Dataset type identifier
        backend: Backend display name and version
        format: Stream format name
        record_count: Records inserted or rows written
        error_count: Error diagnostics
        warning_count: Warning diagnostics
        parsed_count: Rows converted during the parse phase
        rejected_count: Records refused during the insert phase
        duplicate_count: Duplicates met during the insert phase
        records_per_second: Throughput metric
        diagnostics: Every diagnostic, in order
    """

    session_id: str
    mode: str
    status: str
    start_time: str
    end_time: str
    duration_seconds: float
    path: str | None
    dataset: str | None
    backend: str | None
    format: str | None
    record_count: int
    error_count: int
    warning_count: int
    parsed_count: int = 0
    rejected_count: int = 0
    duplicate_count: int = 0
    records_per_second: float = 0.0
    diagnostics: list[dict[str, Any]] = field(default_factory=list)


def report_status(report: Report) -> str:
    """Map a report onto completed / partial / failed / cancelled."""
    if report.cancelled:
        return "cancelled"
    if report.error_count == 0:
        return "completed"
    return "partial" if report.record_count > 0 else "failed"


class ReportGenerator:
    """
    Generate reports for finished sessions.

    Features:
    - JSON report generation (machine readable)
    - Rich summary table and diagnostic listing (human readable)
    """

    def generate_report(
        self,
        session: Session,
        session_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> SessionReport:
        """
        Generate report object from a finished session.

        Args:
            session: Session whose engine run has ended
            session_id: Session identifier
            start_time: Start timestamp
            end_time: End timestamp

        Returns:
            SessionReport object
        """
        report = session.report or Report()
        duration = (end_time - start_time).total_seconds()
        backend = session.backend

        return SessionReport(
            session_id=session_id,
            mode=session.mode.value,
            status="failed" if session.status == SessionStatus.FAILED else report_status(report),
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
            duration_seconds=duration,
            path=str(session.path) if session.path else None,
            dataset=session.capability.type_id if session.capability else None,
            backend=f"{backend.display_name} {backend.version}" if backend else None,
            format=session.stream_format.name if session.stream_format else None,
            record_count=report.record_count,
            error_count=report.error_count,
            warning_count=report.warning_count,
            parsed_count=report.parsed_count,
            rejected_count=report.rejected_count,
            duplicate_count=report.duplicate_count,
            records_per_second=report.record_count / duration if duration > 0 else 0.0,
            diagnostics=[
                {
                    "line": d.line_number,
                    "severity": d.severity.value,
                    "message": d.message,
                }
                for d in session.diagnostics
            ],
        )

    def write_json_report(self, report: SessionReport, output_path: Path) -> None:
        """
        Write report as JSON.

        Args:
            report: Session report
            output_path: Output file path
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(asdict(report), f, indent=2)

        logger.info("JSON report written", path=str(output_path))

    def build_summary_table(self, report: SessionReport) -> Table:
        """
        Build the summary table shown at the end of a session.

        Args:
            report: Session report

        Returns:
            Rich table with one metric per row
        """
        status_style = {
            "completed": "green",
            "partial": "yellow",
            "failed": "red",
            "cancelled": "magenta",
        }.get(report.status, "white")

        table = Table(title=f"{report.mode} Summary", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Status", f"[{status_style}]{report.status}[/{status_style}]")
        table.add_row("Dataset", report.dataset or "-")
        table.add_row("Backend", report.backend or "-")
        table.add_row("Format", report.format or "-")
        if report.mode == "Import":
            table.add_row("Rows converted", str(report.parsed_count))
            table.add_row("Records inserted", str(report.record_count))
            table.add_row("Records rejected", str(report.rejected_count))
            table.add_row("Duplicates", str(report.duplicate_count))
        else:
            table.add_row("Rows written", str(report.record_count))
        table.add_row("Errors", str(report.error_count))
        table.add_row("Warnings", str(report.warning_count))
        table.add_row("Duration", f"{report.duration_seconds:.2f}s")
        return table

    def print_summary(
        self, report: SessionReport, console: Console, max_diagnostics: int = 20
    ) -> None:
        """
        Print the summary table, then the first diagnostics.

        Args:
            report: Session report
            console: Rich console for output
            max_diagnostics: Number of diagnostics listed before truncating
        """
        console.print(self.build_summary_table(report))

        shown = [d for d in report.diagnostics if d["severity"] != Severity.INFO.value]
        if not shown:
            return

        table = Table(title="Diagnostics", show_header=True)
        table.add_column("Line", justify="right")
        table.add_column("Severity")
        table.add_column("Message", overflow="fold")
        for d in shown[:max_diagnostics]:
            style = "red" if d["severity"] == Severity.ERROR.value else "yellow"
            table.add_row(str(d["line"] or "-"), f"[{style}]{d['severity']}[/{style}]", escape(d["message"]))
        console.print(table)

        if len(shown) > max_diagnostics:
            console.print(f"[dim]... and {len(shown) - max_diagnostics} more[/dim]")
