"""Backend resolution for a source or destination and a dataset."""

import structlog

from ..backends.base import Backend
from ..models.stream_format import Mode
from ..utils.exceptions import ConfigurationError
from .registry import BackendRegistry

logger = structlog.get_logger(__name__)


class Resolver:
    """
    Select backends compatible with a content type and a dataset.

    ``candidates`` never fails; ``resolve`` turns an empty match into a
    ConfigurationError for callers that need exactly one backend.
    """

    def __init__(self, registry: BackendRegistry) -> None:
        self.registry = registry

    def candidates(self, content_type: str | None, type_id: str, mode: Mode = Mode.IMPORT) -> list[Backend]:
        """Ordered list of matching backends, possibly empty."""
        backends = self.registry.resolve(content_type, type_id, mode)
        logger.debug(
            "Backends resolved",
            content_type=content_type,
            dataset=type_id,
            mode=Mode(mode).value,
            backends=[b.display_name for b in backends],
        )
        return backends

    def resolve(
        self,
        content_type: str | None,
        type_id: str,
        mode: Mode = Mode.IMPORT,
        preferred: str | None = None,
    ) -> Backend:
        """
        Select one backend.

        Args:
            content_type: Sniffed or declared content type
            type_id: Dataset type identifier
            mode: Import or Export
            preferred: Display name of the backend to pick among the matches

        Returns:
            The preferred backend, or the first-registered match

        Raises:
            ConfigurationError: If nothing matches, or the preferred backend
                is not among the matches
        """
        backends = self.candidates(content_type, type_id, mode)
        if not backends:
            raise ConfigurationError(
                f"No backend can {'read' if Mode(mode) == Mode.IMPORT else 'write'} "
                f"'{content_type}' for dataset {type_id}"
            )
        if preferred is None:
            return backends[0]
        for backend in backends:
            if backend.display_name.lower() == preferred.lower():
                return backend
        raise ConfigurationError(
            f"Backend '{preferred}' cannot handle '{content_type}' for dataset {type_id}; "
            f"candidates: {', '.join(b.display_name for b in backends)}"
        )
