"""ledgerio - Pluggable tabular import/export for double-entry books."""

__version__ = "0.1.0"

from .cli import app  # noqa: E402
from .config import LedgerIOConfig  # noqa: E402
from .core import SessionController, default_registry  # noqa: E402
from .models import Mode, StreamFormat  # noqa: E402

__all__ = ["app", "LedgerIOConfig", "SessionController", "default_registry", "Mode", "StreamFormat", "__version__"]
