"""Execution engine for import and export sessions.

Import runs in two phases:

1. Parse: the backend reads the source into rows; header rows are skipped,
   every other row goes through the dataset's ``convert_row``. A failing row
   becomes an error diagnostic and is skipped; the phase always reads the
   whole file (collect-all-errors) unless ``stop_on_first_error`` is set.
2. Insert: converted records are handed to ``consume_rows`` chunk by chunk.
   The dataset may reject individual records, which become diagnostics.

A backend declaring ``inserts_while_parsing`` gets both phases interleaved:
each parsed chunk is inserted before the next one is read.

Export runs in a single phase: rows produced by the dataset are written by
the backend, header row first when the format asks for it.

Driving:
-------
``steps()`` is a generator doing one chunk of work per iteration, so a host
event loop can interleave its own work and surface a cancel request between
chunks. ``run()`` drains it, ``run_async()`` yields to asyncio between
chunks. Cancellation is only observed between chunks.

Failures:
--------
A source or destination that cannot be opened raises ResourceError before
any progress event. Record problems are only ever reported as diagnostics.
"""

import asyncio
import threading
from collections.abc import Iterable, Iterator
from itertools import islice
from typing import TypeVar

import structlog

from ..backends.base import Backend
from ..constants import DEFAULT_CHUNK_SIZE
from ..datasets.base import DatasetCapability
from ..models.results import Diagnostic, Phase, Report, Severity
from ..models.session import ImportOptions, ImportRecord, Session, SessionStatus
from ..models.stream_format import Mode, StreamFormat
from ..observability.progress import LoggingSink, ProgressSink
from ..utils.exceptions import ConfigurationError, RecordError, RecordWarning, ResourceError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield successive lists of at most ``size`` items."""
    iterator = iter(items)
    while chunk := list(islice(iterator, size)):
        yield chunk


class CancelToken:
    """Cancellation flag, settable from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ExecutionEngine:
    """
    Run a configured import or export session.

    The session must carry a capability, a backend, a stream format and a
    path. The engine works on a read-only snapshot of the format and is the
    only writer of the session diagnostics, report and status while it runs.
    """

    def __init__(
        self,
        session: Session,
        sink: ProgressSink | None = None,
        cancel: CancelToken | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Initialize ExecutionEngine.

        Args:
            session: Configured ImportSession or ExportSession
            sink: Receiver of progress, diagnostics and the final report
            cancel: Cancellation flag checked between chunks
            chunk_size: Rows per unit of work

        Raises:
            ConfigurationError: If the session is incomplete
        """
        if chunk_size < 1:
            raise ConfigurationError(f"Chunk size must be positive, got {chunk_size}")
        if session.capability is None:
            raise ConfigurationError("No dataset selected")
        if session.backend is None:
            raise ConfigurationError("No backend selected")
        if session.stream_format is None:
            raise ConfigurationError("No stream format configured")
        if session.path is None:
            raise ConfigurationError("No source or destination selected")
        if session.is_finished or session.status == SessionStatus.EXECUTING:
            raise ConfigurationError(f"Session already {session.status.value}")

        self.session = session
        self.sink = sink if sink is not None else LoggingSink()
        self.cancel = cancel if cancel is not None else CancelToken()
        self.chunk_size = chunk_size

        self.capability: DatasetCapability = session.capability
        self.backend: Backend = session.backend
        fmt = session.stream_format
        self.format: StreamFormat = fmt if fmt.frozen else fmt.snapshot()
        self.report = Report()

        if not self.capability.supports(session.mode):
            raise ConfigurationError(
                f"Dataset {self.capability.type_id} cannot be used for {session.mode.value.lower()}"
            )
        if not self.backend.supports(session.mode):
            raise ConfigurationError(
                f"Backend {self.backend.display_name} cannot be used for {session.mode.value.lower()}"
            )
        if self._options.empty_before_insert and not self.capability.can_clear:
            raise ConfigurationError(f"Dataset {self.capability.type_id} cannot be emptied")

    # -------------------------------------------------------------------------
    # Driving
    # -------------------------------------------------------------------------

    def steps(self) -> Iterator[None]:
        """
        Run the session one chunk per iteration.

        Raises:
            ResourceError: If the source or destination cannot be used
        """
        self.session.status = SessionStatus.EXECUTING
        log = logger.bind(
            mode=self.session.mode.value,
            dataset=self.capability.type_id,
            backend=self.backend.display_name,
            path=str(self.session.path),
        )
        log.info("Session started")

        try:
            if self.session.mode == Mode.IMPORT:
                yield from self._import()
            else:
                yield from self._export()
        except ResourceError as e:
            self.session.status = SessionStatus.FAILED
            log.error("Session failed", error=str(e))
            raise

        self.session.report = self.report
        self.session.status = SessionStatus.CANCELLED if self.report.cancelled else SessionStatus.DONE
        log.info(
            "Session finished",
            records=self.report.record_count,
            errors=self.report.error_count,
            warnings=self.report.warning_count,
            cancelled=self.report.cancelled,
        )
        self.sink.on_done(self.report)

    def run(self) -> Report:
        """Run the whole session and return its report."""
        for _ in self.steps():
            pass
        return self.report

    async def run_async(self) -> Report:
        """Run the whole session, yielding to the event loop between chunks."""
        for _ in self.steps():
            await asyncio.sleep(0)
        return self.report

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _progress(self, phase: Phase, fraction: float | None, text: str) -> None:
        self.sink.on_progress(phase, fraction, text)

    def _diagnostic(self, line_number: int, severity: Severity, message: str) -> None:
        self._record(Diagnostic(line_number, severity, message))

    def _record(self, diagnostic: Diagnostic) -> None:
        self.session.diagnostics.append(diagnostic)
        self.report.count(diagnostic)
        self.sink.on_diagnostic(diagnostic.line_number, diagnostic.severity, diagnostic.message)

    def _cancelled(self) -> bool:
        if self.cancel.cancelled:
            self.report.cancelled = True
        return self.report.cancelled

    def _should_stop(self, options: ImportOptions) -> bool:
        return options.stop_on_first_error and self.report.error_count > 0

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    @property
    def _options(self) -> ImportOptions:
        return getattr(self.session, "options", None) or ImportOptions()

    def _import(self) -> Iterator[None]:
        options = self._options
        combined = self.backend.inserts_while_parsing
        stream = self.backend.parse(self.session.path, self.format)

        with stream:
            if self._cancelled():
                return
            if combined:
                self._empty_dataset(options)

            pending: list[ImportRecord] = []
            rows_seen = 0
            headers = self.format.headers_count
            self._progress(Phase.PARSE, 0.0 if stream.total else None, "Parsing source")

            for chunk in chunked(stream, self.chunk_size):
                if self._cancelled():
                    return
                converted: list[ImportRecord] = []
                for row in chunk:
                    rows_seen += 1
                    if rows_seen <= headers:
                        continue
                    record = self._convert(row.line_number, row.fields, row.error)
                    if record is not None:
                        converted.append(record)
                    if self._should_stop(options):
                        break

                self._progress(Phase.PARSE, stream.fraction, f"{stream.position} lines read")
                if combined:
                    self._consume(converted, options)
                else:
                    pending.extend(converted)
                yield
                if self._should_stop(options):
                    return

            self._check_headers(rows_seen, headers)

        if combined or self.report.cancelled:
            return
        yield from self._insert(pending, options)

    def _convert(self, line_number: int, fields: list[str], error: str | None) -> ImportRecord | None:
        if error is not None:
            self._diagnostic(line_number, Severity.ERROR, error)
            return None
        try:
            conversion = self.capability.convert_row(fields, self.format)
        except RecordWarning as e:
            self._diagnostic(e.line_number or line_number, Severity.WARNING, e.args[0])
            return None
        except RecordError as e:
            self._diagnostic(e.line_number or line_number, Severity.ERROR, e.args[0])
            return None

        self.report.parsed_count += 1
        for warning in conversion.warnings:
            self._diagnostic(line_number, Severity.WARNING, warning)
        return ImportRecord(line_number, conversion.record)

    def _check_headers(self, rows_seen: int, headers: int) -> None:
        if rows_seen < headers:
            self._diagnostic(
                0,
                Severity.ERROR,
                f"Expected headers count={headers} greater than count of lines={rows_seen} "
                f"read from '{self.session.path}' file",
            )
        elif rows_seen == headers:
            self._diagnostic(0, Severity.INFO, f"No data rows found in '{self.session.path}'")

    def _insert(self, pending: list[ImportRecord], options: ImportOptions) -> Iterator[None]:
        if self._should_stop(options):
            return
        total = len(pending)
        self._empty_dataset(options)
        self._progress(Phase.INSERT, 0.0 if total else 1.0, f"Inserting {total} records")

        done = 0
        for chunk in chunked(pending, self.chunk_size):
            if self._cancelled():
                return
            self._consume(chunk, options)
            done += len(chunk)
            self._progress(Phase.INSERT, done / total, f"{done}/{total} records processed")
            yield
            if self._should_stop(options):
                return

    def _empty_dataset(self, options: ImportOptions) -> None:
        if not options.empty_before_insert:
            return
        removed = self.capability.clear()
        self._diagnostic(0, Severity.INFO, f"{removed} existing records deleted")

    def _consume(self, records: list[ImportRecord], options: ImportOptions) -> None:
        if not records:
            return
        result = self.capability.consume_rows(records, options)
        self.report.record_count += result.inserted
        self.report.duplicate_count += result.duplicates
        for diagnostic in sorted(result.diagnostics, key=lambda d: d.line_number):
            if diagnostic.severity == Severity.ERROR:
                self.report.rejected_count += 1
            self._record(diagnostic)

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def _export(self) -> Iterator[None]:
        writer = self.backend.open_writer(self.session.path, self.format)
        with writer:
            if self._cancelled():
                return
            total = self.capability.count()
            try:
                headers = self.capability.headers()
                if self.format.with_headers and headers:
                    writer.write_header(headers)
                self._progress(Phase.EXPORT, 0.0 if total else None, "Exporting records")

                for chunk in chunked(self.capability.produce_rows(self.format), self.chunk_size):
                    if self._cancelled():
                        return
                    for fields in chunk:
                        writer.write_row(fields)
                    self.report.record_count = writer.count
                    fraction = min(writer.count / total, 1.0) if total else None
                    self._progress(Phase.EXPORT, fraction, f"{writer.count} records written")
                    yield
            except OSError as e:
                raise ResourceError(
                    f"Unable to write {self.session.path}: {e.strerror or e}",
                    path=str(self.session.path),
                ) from e
