"""Error taxonomy for the access layer."""
from __future__ import annotations

from typing import Optional

SESSION_EXPIRED_MESSAGE = "Session expired - please sign in again"


class AccessLayerError(RuntimeError):
    """Base class for every failure raised by the access layer."""


class TransportUnreachable(AccessLayerError):
    """Raised when an endpoint cannot be reached (network, DNS, timeout)."""


class HttpFailure(AccessLayerError):
    """Raised when a backend answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str, *, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MalformedResponse(HttpFailure):
    """Raised when a successful answer carries data that cannot be parsed."""

    def __init__(self, message: str, *, status_code: int = 200, body: Optional[str] = None) -> None:
        super().__init__(status_code, message, body=body)


class AuthExpired(AccessLayerError):
    """Raised when the session cannot be recovered and the user must sign in."""

    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE) -> None:
        super().__init__(message)


class BusinessFailure(AccessLayerError):
    """Raised for a well-formed ``success: false`` backend response."""

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class ValidationFailure(AccessLayerError, ValueError):
    """Raised when the caller supplied invalid arguments."""


class PendingCreationError(ValidationFailure):
    """Raised when an action targets an entity whose creation is still in flight."""

    def __init__(self, entity_kind: str, entity_id: str) -> None:
        super().__init__(
            f"{entity_kind.capitalize()} is still being created - please try again in a moment"
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id
