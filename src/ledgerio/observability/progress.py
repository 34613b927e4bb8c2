"""Progress and diagnostic sinks.

The execution engine reports to a sink synchronously, in execution order:

- on_progress(phase, fraction, text): fraction in [0, 1], or None when
  the total is unknown (indeterminate/pulsing)
- on_diagnostic(line_number, severity, message)
- on_done(report): once, at the end of the session

Sinks provided:
- ProgressSink: does nothing, base class for custom sinks
- CollectingSink: records every event (tests, embedding hosts)
- LoggingSink: emits structlog events
- RichProgressSink: rich progress bar with one task per phase
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..models.results import Diagnostic, Phase, Report, Severity

logger = structlog.get_logger(__name__)


class ProgressSink:
    """Sink receiving engine events; ignores them all."""

    def on_progress(self, phase: Phase, fraction: float | None, text: str) -> None:
        pass

    def on_diagnostic(self, line_number: int, severity: Severity, message: str) -> None:
        pass

    def on_done(self, report: Report) -> None:
        pass


@dataclass
class CollectingSink(ProgressSink):
    """
    Sink keeping every event in order.

    ``events`` interleaves all event kinds as (kind, payload) tuples, so
    the relative order of progress and diagnostics can be checked.
    """

    events: list[tuple[str, Any]] = field(default_factory=list)
    progress: list[tuple[Phase, float | None, str]] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    report: Report | None = None

    def on_progress(self, phase: Phase, fraction: float | None, text: str) -> None:
        self.progress.append((phase, fraction, text))
        self.events.append(("progress", (phase, fraction, text)))

    def on_diagnostic(self, line_number: int, severity: Severity, message: str) -> None:
        diagnostic = Diagnostic(line_number, severity, message)
        self.diagnostics.append(diagnostic)
        self.events.append(("diagnostic", diagnostic))

    def on_done(self, report: Report) -> None:
        self.report = report
        self.events.append(("done", report))

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


class LoggingSink(ProgressSink):
    """Sink writing events to the structured log."""

    def on_progress(self, phase: Phase, fraction: float | None, text: str) -> None:
        logger.debug("Progress", phase=phase.value, fraction=fraction, text=text)

    def on_diagnostic(self, line_number: int, severity: Severity, message: str) -> None:
        if severity == Severity.ERROR:
            logger.warning("Record rejected", line=line_number, message=message)
        elif severity == Severity.WARNING:
            logger.info("Record warning", line=line_number, message=message)
        else:
            logger.info(message, line=line_number)

    def on_done(self, report: Report) -> None:
        logger.info(
            "Session finished",
            records=report.record_count,
            errors=report.error_count,
            warnings=report.warning_count,
            cancelled=report.cancelled,
        )


class RichProgressSink(ProgressSink):
    """
    Sink driving a rich progress display.

    Each phase gets its own task; an unknown fraction leaves the bar
    pulsing. Diagnostics are printed above the bar as they arrive when
    ``show_diagnostics`` is set.
    """

    SCALE = 1000

    def __init__(self, console: Console, show_diagnostics: bool = True) -> None:
        self.console = console
        self.show_diagnostics = show_diagnostics
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._tasks: dict[Phase, TaskID] = {}

    def __enter__(self) -> "RichProgressSink":
        self.progress.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.progress.stop()

    def on_progress(self, phase: Phase, fraction: float | None, text: str) -> None:
        task = self._tasks.get(phase)
        if task is None:
            task = self.progress.add_task(f"[cyan]{text}", total=None)
            self._tasks[phase] = task
        if fraction is None:
            self.progress.update(task, description=f"[cyan]{text}")
        else:
            self.progress.update(
                task,
                description=f"[cyan]{text}",
                total=self.SCALE,
                completed=int(fraction * self.SCALE),
            )

    def on_diagnostic(self, line_number: int, severity: Severity, message: str) -> None:
        if not self.show_diagnostics:
            return
        color = {Severity.ERROR: "red", Severity.WARNING: "yellow"}.get(severity, "dim")
        prefix = f"[{line_number}] " if line_number else ""
        self.console.print(
            f"[{color}]{escape(prefix)}{severity.value}: {escape(message)}[/{color}]", highlight=False
        )

    def on_done(self, report: Report) -> None:
        for phase, task in self._tasks.items():
            self.progress.update(task, description=f"[green]DONE: {phase.value}")
