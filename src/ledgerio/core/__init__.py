"""Core components - Registry, resolution, sniffing and session control."""

from .controller import SessionController, SessionState
from .registry import BackendRegistry, default_registry
from .resolver import Resolver
from .sniffer import sniff

__all__ = [
    "BackendRegistry",
    "default_registry",
    "Resolver",
    "sniff",
    "SessionController",
    "SessionState",
]
