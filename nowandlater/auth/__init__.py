"""Session persistence and access-token lifecycle."""

from .session import FileSessionStore, MemorySessionStore, Session, SessionStore
from .tokens import AuthListener, RefreshOutcome, TokenLifecycleManager, TokenState

__all__ = [
    "AuthListener",
    "FileSessionStore",
    "MemorySessionStore",
    "RefreshOutcome",
    "Session",
    "SessionStore",
    "TokenLifecycleManager",
    "TokenState",
]
