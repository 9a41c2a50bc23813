"""Backend transports and the authenticated executor they share."""

from .executor import AuthenticatedExecutor, RequestDescriptor
from .health import BackendHealth, Transport
from .legacy import LegacyTransport
from .modern import ModernRoute, ModernTransport

__all__ = [
    "AuthenticatedExecutor",
    "BackendHealth",
    "LegacyTransport",
    "ModernRoute",
    "ModernTransport",
    "RequestDescriptor",
    "Transport",
]
