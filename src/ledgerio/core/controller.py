"""Session controller: the configuration state machine.

A session is configured page by page, in strict order:

    SOURCE_SELECTED -> DATASET_CHOSEN -> BACKEND_CHOSEN -> FORMAT_CONFIGURED
        -> CONFIRMED -> EXECUTING -> DONE

Each configuration state exposes a completeness predicate; ``forward()``
refuses to leave an incomplete state. ``back()`` returns to the previous
state at any time before execution.

Entering a state runs its one-time initialisation the first time only, then
its display step every time. Display steps recompute what depends on earlier
choices: the offered datasets, the resolved backends and the candidate
format. Leaving SOURCE_SELECTED remembers the folder, and leaving
FORMAT_CONFIGURED saves the format; both are best-effort.

The controller drives a single ImportSession or ExportSession and hands it
to the ExecutionEngine on ``execute()``.
"""

import os
from collections.abc import Callable
from dataclasses import fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from ..backends.base import Backend
from ..constants import DEFAULT_CHUNK_SIZE, LAST_EXPORT_SCOPE, LAST_IMPORT_SCOPE
from ..datasets.base import DatasetCapability
from ..execution.engine import CancelToken, ExecutionEngine
from ..models.results import Report
from ..models.session import DuplicateMode, ExportSession, ImportOptions, ImportSession, Session
from ..models.stream_format import Mode, StreamFormat
from ..observability.progress import ProgressSink
from ..persistence.settings import SettingsStore
from ..utils.exceptions import ConfigurationError, SettingsError
from .registry import BackendRegistry
from .resolver import Resolver
from .sniffer import sniff

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    """Pages of the configuration state machine, in forward order."""

    SOURCE_SELECTED = "source_selected"
    DATASET_CHOSEN = "dataset_chosen"
    BACKEND_CHOSEN = "backend_chosen"
    FORMAT_CONFIGURED = "format_configured"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    DONE = "done"


_ORDER = list(SessionState)

# States the user can configure and move between with forward()/back()
_PAGES = _ORDER[: _ORDER.index(SessionState.CONFIRMED) + 1]


class SessionController:
    """
    Drive the configuration of one import or export session.

    Args:
        registry: Backends and datasets to offer
        mode: Import or Export
        settings: Store for formats and last used folders (optional)
        sniffer: Content type detector, ``sniff`` by default
        chunk_size: Rows per engine step
    """

    def __init__(
        self,
        registry: BackendRegistry,
        mode: Mode = Mode.IMPORT,
        settings: SettingsStore | None = None,
        sniffer: Callable[[Path], str] = sniff,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.registry = registry
        self.resolver = Resolver(registry)
        self.mode = Mode(mode)
        self.settings = settings
        self.sniffer = sniffer
        self.chunk_size = chunk_size

        self.session: Session = ImportSession() if self.mode == Mode.IMPORT else ExportSession()
        self.state = SessionState.SOURCE_SELECTED

        # Derived data, recomputed by the display steps
        self.last_folder: str | None = None
        self.offered_capabilities: list[DatasetCapability] = []
        self.resolved_backends: list[Backend] = []

        self._initialized: set[SessionState] = set()
        self._format_origin: tuple[str, str] | None = None
        self._enter(self.state)

    # -------------------------------------------------------------------------
    # Choices
    # -------------------------------------------------------------------------

    def _check_configurable(self) -> None:
        if self.state in (SessionState.EXECUTING, SessionState.DONE):
            raise ConfigurationError("Session can no longer be configured", state=self.state.value)

    def set_source(self, path: Path | str, content_type: str | None = None) -> None:
        """
        Choose the source (import) or destination (export) file.

        Args:
            path: File path
            content_type: Declared content type; sniffed when omitted
        """
        self._check_configurable()
        self.session.path = Path(path)
        self.session.content_type = content_type or self.sniffer(self.session.path)
        logger.debug(
            "Source selected", path=str(self.session.path), content_type=self.session.content_type
        )

    def select_capability(self, type_id: str) -> DatasetCapability:
        """
        Choose the dataset among the offered ones.

        Raises:
            ConfigurationError: If no offered dataset has this type
        """
        self._check_configurable()
        for capability in self.registry.capabilities(self.mode):
            if capability.type_id == type_id:
                self.session.capability = capability
                return capability
        raise ConfigurationError(
            f"Dataset '{type_id}' is not available for {self.mode.value.lower()}",
            state=SessionState.DATASET_CHOSEN.value,
        )

    def select_backend(self, display_name: str) -> Backend:
        """
        Choose the backend among the resolved ones.

        Raises:
            ConfigurationError: If no resolved backend has this name
        """
        self._check_configurable()
        candidates = self._resolve()
        for backend in candidates:
            if backend.display_name.lower() == display_name.lower():
                self.session.backend = backend
                return backend
        raise ConfigurationError(
            f"Backend '{display_name}' does not handle '{self.session.content_type}'",
            state=SessionState.BACKEND_CHOSEN.value,
        )

    def update_format(self, **values: Any) -> StreamFormat:
        """
        Edit the candidate format.

        Values are checked and kept in the session; they are persisted when
        leaving the format page.

        Raises:
            ConfigurationError: If the format is read-only, or a value is invalid
        """
        self._check_configurable()
        fmt = self.session.stream_format
        if fmt is None:
            raise ConfigurationError("No format loaded yet", state=SessionState.FORMAT_CONFIGURED.value)
        if not fmt.updatable:
            raise ConfigurationError(f"Format '{fmt.name}' cannot be modified", state=self.state.value)
        allowed = {f.name for f in fields(StreamFormat)} - {"name", "mode", "frozen", "updatable"}
        unknown = set(values) - allowed
        if unknown:
            raise ConfigurationError(f"Unknown stream format attributes: {', '.join(sorted(unknown))}")
        self.session.stream_format = replace(fmt, frozen=False, **values)
        return self.session.stream_format

    def set_options(self, **values: Any) -> ImportOptions:
        """
        Change the import options.

        Raises:
            ConfigurationError: On an export session or an unknown option
        """
        self._check_configurable()
        if not isinstance(self.session, ImportSession):
            raise ConfigurationError("Options only apply to imports")
        try:
            if "duplicate_mode" in values:
                values["duplicate_mode"] = DuplicateMode(values["duplicate_mode"])
            self.session.options = replace(self.session.options, **values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid import option: {e}") from e
        return self.session.options

    # -------------------------------------------------------------------------
    # Completeness
    # -------------------------------------------------------------------------

    def completion_message(self, state: SessionState | None = None) -> str | None:
        """
        Explain why ``state`` (the current state by default) is incomplete.

        Returns:
            Message, or None if the state is complete
        """
        state = state or self.state

        if state == SessionState.SOURCE_SELECTED:
            return self._check_source()

        if state == SessionState.DATASET_CHOSEN:
            if self.session.capability is None:
                return "No dataset selected"
            if self.session.capability not in self.registry.capabilities(self.mode):
                return f"Dataset {self.session.capability.type_id} is not available"
            return None

        if state == SessionState.BACKEND_CHOSEN:
            candidates = self._resolve()
            if not candidates:
                return f"No backend handles '{self.session.content_type}' for this dataset"
            if self.session.backend is None or all(b is not self.session.backend for b in candidates):
                return "No backend selected"
            return None

        if state == SessionState.FORMAT_CONFIGURED:
            fmt = self.session.stream_format
            if fmt is None:
                return "No format configured"
            # Opaque formats are handed to the backend as is
            if fmt.is_other:
                return None
            ok, message = fmt.validate()
            return None if ok else message

        if state == SessionState.CONFIRMED:
            return None

        return "Session is executing" if state == SessionState.EXECUTING else None

    def is_complete(self, state: SessionState | None = None) -> bool:
        return self.completion_message(state) is None

    def _check_source(self) -> str | None:
        path = self.session.path
        if path is None:
            return "No file selected"
        if path.is_dir():
            return f"{path} is a directory"
        if self.mode == Mode.IMPORT:
            if not path.is_file():
                return f"{path} does not exist"
            if not os.access(path, os.R_OK):
                return f"{path} is not readable"
            return None
        if path.exists():
            if not os.access(path, os.W_OK):
                return f"{path} is not writable"
            return None
        parent = path.parent
        if not parent.is_dir() or not os.access(parent, os.W_OK):
            return f"Folder {parent} is not writable"
        return None

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def forward(self) -> SessionState:
        """
        Move to the next page.

        Raises:
            ConfigurationError: If the current page is incomplete, or the
                session is confirmed (use ``execute``) or executing
        """
        if self.state not in _PAGES or self.state == SessionState.CONFIRMED:
            raise ConfigurationError(f"Cannot move forward from {self.state.value}", state=self.state.value)
        message = self.completion_message()
        if message is not None:
            raise ConfigurationError(message, state=self.state.value)

        self._leave(self.state)
        self.state = _ORDER[_ORDER.index(self.state) + 1]
        self._enter(self.state)
        return self.state

    def back(self) -> SessionState:
        """
        Return to the previous page.

        Raises:
            ConfigurationError: On the first page, or once execution started
        """
        if self.state not in _PAGES or self.state == SessionState.SOURCE_SELECTED:
            raise ConfigurationError(f"Cannot move back from {self.state.value}", state=self.state.value)
        self.state = _ORDER[_ORDER.index(self.state) - 1]
        self._enter(self.state)
        return self.state

    def _enter(self, state: SessionState) -> None:
        if state not in self._initialized:
            self._initialized.add(state)
            init = getattr(self, f"_init_{state.value}", None)
            if init is not None:
                init()
        display = getattr(self, f"_display_{state.value}", None)
        if display is not None:
            display()
        logger.debug("State entered", state=state.value)

    def _leave(self, state: SessionState) -> None:
        if state == SessionState.SOURCE_SELECTED:
            self._save_last_folder()
        elif state == SessionState.FORMAT_CONFIGURED:
            self._save_format()

    # -------------------------------------------------------------------------
    # Page steps
    # -------------------------------------------------------------------------

    @property
    def _scope(self) -> str:
        return LAST_IMPORT_SCOPE if self.mode == Mode.IMPORT else LAST_EXPORT_SCOPE

    def _init_source_selected(self) -> None:
        if self.settings is None:
            return
        try:
            self.last_folder = self.settings.load_last_path(self._scope)
        except SettingsError as e:
            logger.warning("Unable to read last used folder", error=str(e))

    def _display_dataset_chosen(self) -> None:
        self.offered_capabilities = self.registry.capabilities(self.mode)
        if self.session.capability is not None and self.session.capability not in self.offered_capabilities:
            self.session.capability = None

    def _display_backend_chosen(self) -> None:
        self.resolved_backends = self._resolve()
        selected = self.session.backend
        if selected is None or all(b is not selected for b in self.resolved_backends):
            # First-registered match is the default selection
            self.session.backend = self.resolved_backends[0] if self.resolved_backends else None

    def _display_format_configured(self) -> None:
        capability, backend = self.session.capability, self.session.backend
        origin = (capability.type_id, backend.display_name)
        if self.session.stream_format is None or origin != self._format_origin:
            self.session.stream_format = self._load_format(capability, backend)
            self._format_origin = origin

    def _resolve(self) -> list[Backend]:
        if self.session.capability is None:
            return []
        return self.resolver.candidates(
            self.session.content_type, self.session.capability.type_id, self.mode
        )

    def _load_format(self, capability: DatasetCapability, backend: Backend) -> StreamFormat:
        proposed = backend.default_format(self.mode)
        if proposed is not None and not proposed.updatable:
            return proposed
        if self.settings is not None and StreamFormat.exists(self.settings, capability.type_id, self.mode):
            return StreamFormat.load(self.settings, capability.type_id, self.mode)
        if proposed is not None:
            return replace(proposed, name=capability.type_id)
        return StreamFormat.default(self.mode, capability.type_id)

    def _save_last_folder(self) -> None:
        if self.settings is None or self.session.path is None:
            return
        folder = str(self.session.path.resolve().parent)
        try:
            self.settings.save_last_path(self._scope, folder)
            self.last_folder = folder
        except (SettingsError, OSError) as e:
            logger.warning("Unable to save last used folder", folder=folder, error=str(e))

    def _save_format(self) -> None:
        fmt = self.session.stream_format
        if fmt is None or not fmt.updatable:
            return
        try:
            ok, message = fmt.apply(self.settings)
        except ConfigurationError as e:
            ok, message = False, str(e)
        if not ok:
            logger.warning("Format not saved", format=fmt.key, error=message)

    # -------------------------------------------------------------------------
    # Confirmation and execution
    # -------------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        """Read-only summary of the choices made so far."""
        session = self.session
        fmt = session.stream_format
        summary: dict[str, Any] = {
            "mode": self.mode.value,
            "path": str(session.path) if session.path else None,
            "content_type": session.content_type,
            "dataset": session.capability.label if session.capability else None,
            "backend": (
                f"{session.backend.display_name} {session.backend.version}" if session.backend else None
            ),
            "format": fmt.name if fmt else None,
        }
        if fmt is not None:
            summary.update(
                kind=fmt.kind.value,
                charset=fmt.charset,
                date_format=fmt.date_format.value if fmt.date_format else None,
                thousand_sep=fmt.thousand_sep,
                decimal_sep=fmt.decimal_sep,
                field_sep=fmt.field_sep,
                string_delim=fmt.string_delim,
                headers=fmt.header_policy,
            )
        if isinstance(session, ImportSession):
            summary.update(
                empty_before_insert=session.options.empty_before_insert,
                duplicate_mode=session.options.duplicate_mode.value,
                stop_on_first_error=session.options.stop_on_first_error,
            )
        return summary

    def _start(self, sink: ProgressSink | None, cancel: CancelToken | None) -> ExecutionEngine:
        if self.state != SessionState.CONFIRMED:
            raise ConfigurationError(
                f"Session must be confirmed before execution (currently {self.state.value})",
                state=self.state.value,
            )
        # Choices can still change on the confirmation page
        for page in _PAGES:
            message = self.completion_message(page)
            if message is not None:
                raise ConfigurationError(message, state=page.value)
        engine = ExecutionEngine(self.session, sink=sink, cancel=cancel, chunk_size=self.chunk_size)
        self.session.stream_format = engine.format
        self.state = SessionState.EXECUTING
        return engine

    def _finish(self) -> None:
        self.state = SessionState.DONE

    def execute(self, sink: ProgressSink | None = None, cancel: CancelToken | None = None) -> Report:
        """
        Run the confirmed session to completion.

        Returns:
            Final report (also kept in ``session.report``)

        Raises:
            ConfigurationError: If the session is not confirmed
            ResourceError: If the file cannot be opened; the session is then failed
        """
        engine = self._start(sink, cancel)
        try:
            return engine.run()
        finally:
            self._finish()

    async def execute_async(
        self, sink: ProgressSink | None = None, cancel: CancelToken | None = None
    ) -> Report:
        """Same as ``execute``, yielding to the event loop between chunks."""
        engine = self._start(sink, cancel)
        try:
            return await engine.run_async()
        finally:
            self._finish()
