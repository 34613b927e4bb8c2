"""Execution engine - Runs import and export sessions."""

from .engine import CancelToken, ExecutionEngine, chunked

__all__ = ["ExecutionEngine", "CancelToken", "chunked"]
