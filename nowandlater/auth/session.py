"""Persisted session record for the signed-in user."""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ..errors import ValidationFailure

logger = logging.getLogger(__name__)

SESSION_KEY = "google-auth-state"
DEFAULT_EXPIRES_IN = 3600


@dataclass(slots=True)
class Session:
    """Credentials and identity of the current user.

    ``token_issued_at`` is seconds since the epoch. The stored form keeps the
    millisecond ``tokenIssuedAt`` key used by the web client so both can read
    the same record.
    """

    user_id: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None
    token_issued_at: float = 0.0
    expires_in_seconds: int = DEFAULT_EXPIRES_IN
    token_type: str = "Bearer"
    name: str = ""
    picture: str = ""

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValidationFailure("Session requires a non-empty access token.")
        if not self.token_issued_at:
            self.token_issued_at = time.time()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def identity(self) -> str:
        """Key used to coalesce refreshes for the same user."""
        return self.user_id or self.email

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.token_issued_at

    def apply_refresh(
        self,
        access_token: str,
        *,
        expires_in: Optional[int],
        refresh_token: Optional[str] = None,
        token_type: Optional[str] = None,
        issued_at: Optional[float] = None,
    ) -> None:
        """Swap in a refreshed access token, keeping the old refresh token unless replaced."""
        if not access_token:
            raise ValidationFailure("Refreshed access token must not be empty.")
        self.access_token = access_token
        self.token_issued_at = issued_at if issued_at is not None else time.time()
        self.expires_in_seconds = int(expires_in or DEFAULT_EXPIRES_IN)
        if refresh_token:
            self.refresh_token = refresh_token
        if token_type:
            self.token_type = token_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in_seconds,
            "tokenIssuedAt": int(self.token_issued_at * 1000),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        issued_ms = data.get("tokenIssuedAt")
        return cls(
            user_id=str(data.get("id") or ""),
            email=data.get("email") or "",
            access_token=data.get("access_token") or data.get("id_token") or "",
            refresh_token=data.get("refresh_token") or None,
            token_issued_at=(float(issued_ms) / 1000) if issued_ms else 0.0,
            expires_in_seconds=int(data.get("expires_in") or DEFAULT_EXPIRES_IN),
            token_type=data.get("token_type") or "Bearer",
            name=data.get("name") or "",
            picture=data.get("picture") or "",
        )


class SessionStore(Protocol):
    """Persistent storage holding at most one session record."""

    def load(self) -> Optional[Session]: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """In-process store, handy for tests and short-lived scripts."""

    def __init__(self, session: Optional[Session] = None) -> None:
        self._record: Optional[Dict[str, Any]] = session.to_dict() if session else None
        self.save_count = 0
        self.clear_count = 0

    def load(self) -> Optional[Session]:
        if self._record is None:
            return None
        return Session.from_dict(self._record)

    def save(self, session: Session) -> None:
        self._record = session.to_dict()
        self.save_count += 1

    def clear(self) -> None:
        self._record = None
        self.clear_count += 1


class FileSessionStore:
    """JSON file holding the session under a single key.

    The file survives restarts and is the sole place credentials are
    written or removed.
    """

    def __init__(self, path: Path, *, key: str = SESSION_KEY) -> None:
        self.path = Path(path)
        self.key = key

    def load(self) -> Optional[Session]:
        payload = self._read()
        record = payload.get(self.key)
        if not record:
            return None
        try:
            return Session.from_dict(record)
        except (ValidationFailure, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable session record in %s: %s", self.path, exc)
            return None

    def save(self, session: Session) -> None:
        payload = self._read()
        payload[self.key] = session.to_dict()
        self._write(payload)

    def clear(self) -> None:
        payload = self._read()
        if self.key in payload:
            payload.pop(self.key)
            self._write(payload)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Session file %s is not valid JSON; ignoring it", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, payload: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
