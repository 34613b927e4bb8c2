"""Registry of backends and dataset capabilities.

Backends and capabilities are registered explicitly at startup, in the
order the host wants them offered. Registration is append-only and only
refuses an object that is already registered (by identity).
"""

import structlog

from ..backends.base import Backend
from ..backends.csv_backend import CSVBackend
from ..backends.raw_backend import RawLinesBackend
from ..datasets.base import DatasetCapability
from ..models.stream_format import Mode

logger = structlog.get_logger(__name__)


class BackendRegistry:
    """Ordered collections of backends and dataset capabilities."""

    def __init__(self) -> None:
        self._backends: list[Backend] = []
        self._capabilities: list[DatasetCapability] = []

    def register_backend(self, backend: Backend) -> Backend:
        if not any(b is backend for b in self._backends):
            self._backends.append(backend)
            logger.debug("Backend registered", backend=backend.display_name, version=backend.version)
        return backend

    def register_capability(self, capability: DatasetCapability) -> DatasetCapability:
        if not any(c is capability for c in self._capabilities):
            self._capabilities.append(capability)
            logger.debug("Dataset registered", dataset=capability.type_id)
        return capability

    def backends(self, mode: Mode | None = None) -> list[Backend]:
        """Registered backends, optionally restricted to those supporting ``mode``."""
        if mode is None:
            return list(self._backends)
        return [b for b in self._backends if b.supports(mode)]

    def capabilities(self, mode: Mode | None = None) -> list[DatasetCapability]:
        """Registered capabilities, optionally restricted to those supporting ``mode``."""
        if mode is None:
            return list(self._capabilities)
        return [c for c in self._capabilities if c.supports(mode)]

    def find_capability(self, type_id: str) -> DatasetCapability | None:
        for capability in self._capabilities:
            if capability.type_id == type_id:
                return capability
        return None

    def find_backend(self, display_name: str) -> Backend | None:
        wanted = display_name.lower()
        for backend in self._backends:
            if backend.display_name.lower() == wanted:
                return backend
        return None

    def resolve(self, content_type: str | None, type_id: str, mode: Mode = Mode.IMPORT) -> list[Backend]:
        """
        Backends able to handle ``content_type`` for the ``type_id`` dataset.

        Pure predicate evaluation in registration order; an empty list means
        nothing matches.

        Args:
            content_type: Sniffed or declared content type
            type_id: Dataset type identifier
            mode: Import or Export

        Returns:
            Matching backends, first-registered first
        """
        return [
            backend
            for backend in self._backends
            if backend.supports(mode)
            and backend.accepts_content_type(content_type)
            and backend.supports_dataset(type_id)
        ]

    def __len__(self) -> int:
        return len(self._backends)


def default_registry(
    capabilities: list[DatasetCapability] | tuple[DatasetCapability, ...] = (),
    inserts_while_parsing: bool = False,
    allow_formulas: bool = True,
) -> BackendRegistry:
    """
    Build a registry with the shipped backends and the given capabilities.

    Args:
        capabilities: Datasets to offer, in display order
        inserts_while_parsing: Have the CSV backend insert as it parses
        allow_formulas: Let the CSV backend write formula-like fields as is

    Returns:
        BackendRegistry with CSVBackend then RawLinesBackend
    """
    registry = BackendRegistry()
    registry.register_backend(
        CSVBackend(inserts_while_parsing=inserts_while_parsing, allow_formulas=allow_formulas)
    )
    registry.register_backend(RawLinesBackend())
    for capability in capabilities:
        registry.register_capability(capability)
    return registry
