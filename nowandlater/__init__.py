"""Now & Later data-access layer."""

from .client import AccessLayer, build_access_layer
from .config import ConfigError, Settings, load_settings
from .errors import (
    AccessLayerError,
    AuthExpired,
    BusinessFailure,
    HttpFailure,
    MalformedResponse,
    PendingCreationError,
    TransportUnreachable,
    ValidationFailure,
)

__all__ = [
    "AccessLayer",
    "AccessLayerError",
    "AuthExpired",
    "BusinessFailure",
    "ConfigError",
    "HttpFailure",
    "MalformedResponse",
    "PendingCreationError",
    "Settings",
    "TransportUnreachable",
    "ValidationFailure",
    "build_access_layer",
    "load_settings",
]

__version__ = "0.1.0"
