"""Command-line interface for ledgerio."""

import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .book import Book
from .config import LedgerIOConfig, load_config
from .core.controller import SessionController
from .core.registry import BackendRegistry, default_registry
from .execution.engine import CancelToken
from .models.results import Report
from .models.session import DuplicateMode, SessionStatus
from .models.stream_format import DateFormat, Mode, StreamFormat
from .observability import LogContext, ReportGenerator, RichProgressSink, configure_logging
from .persistence import YamlSettings
from .utils.exceptions import LedgerIOError

app = typer.Typer(
    name="ledgerio",
    help="ledgerio - Import and export accounting data as tabular files",
    add_completion=False,
)
formats_app = typer.Typer(help="Show and edit saved stream formats", no_args_is_help=True)
app.add_typer(formats_app, name="formats")

console = Console()
logger = structlog.get_logger(__name__)

_SEPARATOR_NAMES = {"tab": "\t", "\\t": "\t", "space": " ", "none": ""}


def _separator(value: str | None) -> str | None:
    """Translate a separator given on the command line ("tab", "none"...)."""
    if value is None:
        return None
    return _SEPARATOR_NAMES.get(value.lower(), value)


def _format_values(
    charset: str | None,
    date_format: DateFormat | None,
    thousand_sep: str | None,
    decimal_sep: str | None,
    field_sep: str | None,
    string_delim: str | None,
) -> dict[str, Any]:
    values = {
        "charset": charset,
        "date_format": date_format,
        "thousand_sep": _separator(thousand_sep),
        "decimal_sep": _separator(decimal_sep),
        "field_sep": _separator(field_sep),
        "string_delim": _separator(string_delim),
    }
    return {key: value for key, value in values.items() if value is not None}


def _setup(config_file: Path | None, log_level: str | None, log_filter: str | None) -> LedgerIOConfig:
    config = load_config(config_file)
    configure_logging(
        level=log_level or config.logging.level,
        json_logs=config.logging.format == "json",
        log_file=config.logging.file,
        log_filter=log_filter,
    )
    return config


def _registry(config: LedgerIOConfig, book: Book) -> BackendRegistry:
    return default_registry(
        book.capabilities,
        inserts_while_parsing=config.engine.inserts_while_parsing,
        allow_formulas=config.engine.allow_formulas,
    )


def _open_book(config: LedgerIOConfig, book_dir: Path | None) -> Book:
    book = Book(book_dir or config.book.path)
    book.load()
    return book


def _print_choices(controller: SessionController, session_id: str) -> None:
    summary = controller.summary()
    lines = [f"[bold blue]ledgerio {summary['mode']}[/bold blue]\n", f"Session ID: [cyan]{session_id}[/cyan]"]
    labels = {
        "path": "File",
        "content_type": "Content type",
        "dataset": "Dataset",
        "backend": "Backend",
        "format": "Format",
        "charset": "Charset",
        "date_format": "Date format",
        "thousand_sep": "Thousand separator",
        "decimal_sep": "Decimal separator",
        "field_sep": "Field separator",
        "string_delim": "String delimiter",
        "headers": "Headers",
        "empty_before_insert": "Empty before insert",
        "duplicate_mode": "Duplicates",
        "stop_on_first_error": "Stop on first error",
    }
    for key, label in labels.items():
        if key not in summary:
            continue
        value = summary[key]
        # Separators are quoted so that blanks show
        if isinstance(value, str) and len(value) == 1:
            value = repr(value)
        lines.append(f"{label}: [yellow]{escape(str(value))}[/yellow]")
    console.print(Panel.fit("\n".join(lines), border_style="blue"))


def _execute(controller: SessionController) -> Report:
    """Run the confirmed session; Ctrl-C cancels it between chunks."""
    cancel = CancelToken()
    with RichProgressSink(console) as sink, ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(controller.execute, sink, cancel)
        while True:
            try:
                return future.result(timeout=0.2)
            except FuturesTimeout:
                continue
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling...[/yellow]")
                cancel.cancel()


def _finish(
    controller: SessionController,
    session_id: str,
    start_time: datetime,
    report_file: Path | None,
) -> bool:
    """Print the summary, write the JSON report, and tell whether the run failed."""
    generator = ReportGenerator()
    session_report = generator.generate_report(controller.session, session_id, start_time, datetime.now())
    generator.print_summary(session_report, console)
    if report_file:
        generator.write_json_report(session_report, report_file)
        console.print(f"Report: [cyan]{report_file}[/cyan]")
    return controller.session.status == SessionStatus.FAILED or session_report.error_count > 0


@app.command("import")
def import_file(
    source: Path = typer.Argument(..., help="File to import", exists=True, dir_okay=False),
    dataset: str = typer.Option(..., "--dataset", "-d", help="Dataset to import into (Account, Entry)"),
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend name (default: first match)"),
    content_type: str | None = typer.Option(None, "--content-type", help="Content type (default: sniffed)"),
    charset: str | None = typer.Option(None, "--charset", help="Character set, e.g. UTF-8, ISO-8859-1"),
    date_format: DateFormat | None = typer.Option(None, "--date-format", help="Date format", case_sensitive=False),
    thousand_sep: str | None = typer.Option(None, "--thousand-sep", help="Thousand separator ('none' to unset)"),
    decimal_sep: str | None = typer.Option(None, "--decimal-sep", help="Decimal separator"),
    field_sep: str | None = typer.Option(None, "--field-sep", help="Field separator ('tab' for tabs)"),
    string_delim: str | None = typer.Option(None, "--string-delim", help="String delimiter"),
    headers: int | None = typer.Option(None, "--headers", min=0, help="Number of header rows to skip"),
    empty: bool = typer.Option(False, "--empty", help="Empty the dataset before inserting"),
    duplicates: DuplicateMode | None = typer.Option(
        None, "--duplicates", help="What to do with existing records", case_sensitive=False
    ),
    stop_on_first_error: bool = typer.Option(False, "--stop-on-first-error", help="Stop at the first error"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Import without saving the book"),
    book_dir: Path | None = typer.Option(None, "--book", help="Book directory"),
    report_file: Path | None = typer.Option(None, "--report", help="Write a JSON report"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log verbosity: TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR"
    ),
    log_filter: str | None = typer.Option(
        None, "--log-filter", help="Filter logs by component (comma-separated, e.g. 'engine,controller')"
    ),
) -> None:
    """
    Import a tabular file into a dataset of the book.

    Format options override the saved format of the dataset and are saved
    for the next import.

    Examples:
        ledgerio import accounts.csv --dataset Account
        ledgerio import entries.csv -d Entry --field-sep , --date-format dmy --duplicates replace
        ledgerio import notes.txt -d Account --backend "Raw lines"
    """
    session_id = str(uuid.uuid4())[:8]

    try:
        config = _setup(config_file, log_level, log_filter)
        book = _open_book(config, book_dir)
        controller = SessionController(
            _registry(config, book),
            Mode.IMPORT,
            settings=YamlSettings(config.settings.path),
            chunk_size=config.engine.chunk_size,
        )

        with LogContext(session=session_id, mode=Mode.IMPORT.value, dataset=dataset):
            controller.set_source(source, content_type)
            controller.forward()
            controller.select_capability(dataset)
            controller.forward()
            if backend:
                controller.select_backend(backend)
            controller.forward()

            values = _format_values(charset, date_format, thousand_sep, decimal_sep, field_sep, string_delim)
            if headers is not None:
                values["count_headers"] = headers
            if values:
                controller.update_format(**values)
            controller.set_options(
                empty_before_insert=empty,
                duplicate_mode=duplicates or config.engine.duplicate_mode,
                stop_on_first_error=stop_on_first_error or config.engine.stop_on_first_error,
            )
            controller.forward()

            _print_choices(controller, session_id)
            start_time = datetime.now()
            report = _execute(controller)
            failed = _finish(controller, session_id, start_time, report_file)

            if dry_run:
                console.print("[yellow]DRY RUN: book not saved[/yellow]")
            elif report.record_count or empty:
                book.save()
                console.print(f"[green]Book saved to {book.directory}[/green]")

    except (LedgerIOError, FileNotFoundError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if failed:
        raise typer.Exit(code=1)


@app.command("export")
def export_file(
    dataset: str = typer.Argument(..., help="Dataset to export (Account, Entry)"),
    destination: Path = typer.Argument(..., help="File to write", dir_okay=False),
    backend: str | None = typer.Option(None, "--backend", "-b", help="Backend name (default: first match)"),
    content_type: str | None = typer.Option(
        None, "--content-type", help="Content type (default: from the file extension)"
    ),
    charset: str | None = typer.Option(None, "--charset", help="Character set, e.g. UTF-8, ISO-8859-1"),
    date_format: DateFormat | None = typer.Option(None, "--date-format", help="Date format", case_sensitive=False),
    thousand_sep: str | None = typer.Option(None, "--thousand-sep", help="Thousand separator ('none' to unset)"),
    decimal_sep: str | None = typer.Option(None, "--decimal-sep", help="Decimal separator"),
    field_sep: str | None = typer.Option(None, "--field-sep", help="Field separator ('tab' for tabs)"),
    string_delim: str | None = typer.Option(None, "--string-delim", help="String delimiter"),
    headers: bool | None = typer.Option(None, "--headers/--no-headers", help="Write a header row"),
    book_dir: Path | None = typer.Option(None, "--book", help="Book directory"),
    report_file: Path | None = typer.Option(None, "--report", help="Write a JSON report"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log verbosity: TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR"
    ),
    log_filter: str | None = typer.Option(
        None, "--log-filter", help="Filter logs by component (comma-separated, e.g. 'engine,backend')"
    ),
) -> None:
    """
    Export a dataset of the book to a tabular file.

    Examples:
        ledgerio export Account accounts.csv
        ledgerio export Entry entries.tsv --field-sep tab --no-headers
    """
    session_id = str(uuid.uuid4())[:8]

    try:
        config = _setup(config_file, log_level, log_filter)
        book = _open_book(config, book_dir)
        controller = SessionController(
            _registry(config, book),
            Mode.EXPORT,
            settings=YamlSettings(config.settings.path),
            chunk_size=config.engine.chunk_size,
        )

        with LogContext(session=session_id, mode=Mode.EXPORT.value, dataset=dataset):
            controller.set_source(destination, content_type)
            controller.forward()
            controller.select_capability(dataset)
            controller.forward()
            if backend:
                controller.select_backend(backend)
            controller.forward()

            values = _format_values(charset, date_format, thousand_sep, decimal_sep, field_sep, string_delim)
            if headers is not None:
                values["with_headers"] = headers
            if values:
                controller.update_format(**values)
            controller.forward()

            _print_choices(controller, session_id)
            start_time = datetime.now()
            _execute(controller)
            failed = _finish(controller, session_id, start_time, report_file)

    except (LedgerIOError, FileNotFoundError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if failed:
        raise typer.Exit(code=1)


def _format_table(fmt: StreamFormat, saved: bool) -> Table:
    table = Table(title=f"{fmt.name} ({fmt.mode.value}){'' if saved else ' - defaults'}")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Kind", fmt.kind.value)
    table.add_row("Charset", fmt.charset or "-")
    table.add_row("Date format", fmt.date_format.value if fmt.date_format else "-")
    for label, value in (
        ("Thousand separator", fmt.thousand_sep),
        ("Decimal separator", fmt.decimal_sep),
        ("Field separator", fmt.field_sep),
        ("String delimiter", fmt.string_delim),
    ):
        table.add_row(label, escape(repr(value)) if value is not None else "-")
    table.add_row("Headers", str(fmt.header_policy))
    return table


@formats_app.command("show")
def formats_show(
    name: str = typer.Argument(..., help="Format name, usually the dataset (Account, Entry)"),
    mode: Mode = typer.Option(Mode.IMPORT, "--mode", "-m", help="Import or Export", case_sensitive=False),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
) -> None:
    """
    Show a saved stream format.

    Examples:
        ledgerio formats show Account
        ledgerio formats show Entry --mode export
    """
    try:
        config = _setup(config_file, None, None)
        settings = YamlSettings(config.settings.path)
        fmt = StreamFormat.load(settings, name, mode)
        console.print(_format_table(fmt, StreamFormat.exists(settings, name, mode)))
    except (LedgerIOError, FileNotFoundError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


@formats_app.command("set")
def formats_set(
    name: str = typer.Argument(..., help="Format name, usually the dataset (Account, Entry)"),
    mode: Mode = typer.Option(Mode.IMPORT, "--mode", "-m", help="Import or Export", case_sensitive=False),
    charset: str | None = typer.Option(None, "--charset", help="Character set, e.g. UTF-8, ISO-8859-1"),
    date_format: DateFormat | None = typer.Option(None, "--date-format", help="Date format", case_sensitive=False),
    thousand_sep: str | None = typer.Option(None, "--thousand-sep", help="Thousand separator ('none' to unset)"),
    decimal_sep: str | None = typer.Option(None, "--decimal-sep", help="Decimal separator"),
    field_sep: str | None = typer.Option(None, "--field-sep", help="Field separator ('tab' for tabs)"),
    string_delim: str | None = typer.Option(None, "--string-delim", help="String delimiter"),
    headers: int | None = typer.Option(
        None, "--headers", min=0, help="Header rows to skip (import) or 0/1 (export)"
    ),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Configuration file"),
) -> None:
    """
    Change and save a stream format.

    Examples:
        ledgerio formats set Account --field-sep , --date-format dmy
        ledgerio formats set Entry --mode export --headers 0
    """
    try:
        config = _setup(config_file, None, None)
        settings = YamlSettings(config.settings.path)
        fmt = StreamFormat.load(settings, name, mode)

        values = _format_values(charset, date_format, thousand_sep, decimal_sep, field_sep, string_delim)
        if headers is not None:
            if mode == Mode.IMPORT:
                values["count_headers"] = headers
            else:
                values["with_headers"] = bool(headers)

        ok, message = replace(fmt, **values).validate()
        if not ok:
            console.print(f"[bold red]ERROR:[/bold red] {escape(message or 'Invalid format')}")
            raise typer.Exit(code=1)

        ok, message = fmt.apply(settings, **values)
        if not ok:
            console.print(f"[bold red]ERROR:[/bold red] {escape(message or 'Format not saved')}")
            raise typer.Exit(code=1)

        console.print(_format_table(fmt, saved=True))
        console.print(f"[green]Saved to {config.settings.path}[/green]")
    except (LedgerIOError, FileNotFoundError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


@app.command()
def backends() -> None:
    """List the available backends and what they handle."""
    registry = default_registry()

    table = Table(title="Backends", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Content types")
    table.add_column("Import", justify="center")
    table.add_column("Export", justify="center")

    for backend in registry.backends():
        table.add_row(
            backend.display_name,
            backend.version,
            ", ".join(backend.content_types),
            "yes" if backend.can_parse else "-",
            "yes" if backend.can_write else "-",
        )

    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(
        Panel.fit(
            "[bold]ledgerio[/bold]\n\n"
            f"Version: [cyan]{__version__}[/cyan]\n"
            "Python: 3.11+\n\n"
            "[bold]Datasets:[/bold] Account, Entry\n"
            "[bold]Backends:[/bold] CSV, Raw lines",
            title="About",
            border_style="blue",
        )
    )


if __name__ == "__main__":
    app()
