"""Observability - Logging, progress, and reporting."""

from .logger import LogContext, add_context, clear_all_context, clear_context, configure_logging
from .progress import CollectingSink, LoggingSink, ProgressSink, RichProgressSink
from .reporter import ReportGenerator, SessionReport

__all__ = [
    "ProgressSink",
    "CollectingSink",
    "LoggingSink",
    "RichProgressSink",
    "ReportGenerator",
    "SessionReport",
    "configure_logging",
    "add_context",
    "clear_context",
    "clear_all_context",
    "LogContext",
]
