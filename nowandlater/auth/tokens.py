"""Access-token lifecycle: expiry detection, refresh and forced logout.

State machine over the current session::

    VALID --(expires_in elapsed)--> EXPIRED --(refresh)--> REFRESHING
    REFRESHING --(success)--> VALID
    REFRESHING --(failure)--> LOGGED_OUT

Refreshes are single-flight per session identity: concurrent callers that
need a new token await the same in-flight refresh and receive the same
outcome.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol

import httpx
from google.auth import jwt as google_jwt
from pydantic import ValidationError

from ..errors import AuthExpired, SESSION_EXPIRED_MESSAGE
from ..wire import RefreshRequest, RefreshResponse
from .session import Session, SessionStore

logger = logging.getLogger(__name__)


class TokenState(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


class AuthListener(Protocol):
    """Observer notified of credential lifecycle events."""

    def on_token_refreshed(self, session: Session) -> None: ...

    def on_logged_out(self, reason: str) -> None: ...


@dataclass(slots=True)
class RefreshOutcome:
    success: bool
    access_token: Optional[str] = None
    reason: str = ""


def token_expiry_claim(token: str) -> Optional[float]:
    """Return the ``exp`` claim of a signed token, or None if it has none.

    Only tokens that look like a JWT are decoded; the signature is not
    verified since the check is advisory and the server remains the judge.
    """
    if not token or not token.startswith("eyJ") or token.count(".") != 2:
        return None
    try:
        claims = google_jwt.decode(token, verify=False)
    except ValueError:
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if exp is None:
        return None
    try:
        return float(exp)
    except (TypeError, ValueError):
        return None


def _preview(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    return f"{token[:12]}..."


class TokenLifecycleManager:
    """Owns the session, its expiry checks and its refresh."""

    def __init__(
        self,
        store: SessionStore,
        http_client: httpx.AsyncClient,
        refresh_url: str,
        *,
        listeners: Iterable[AuthListener] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._http = http_client
        self._refresh_url = refresh_url
        self._listeners: List[AuthListener] = list(listeners)
        self._clock = clock
        self._session: Optional[Session] = store.load()
        self._inflight: Dict[str, "asyncio.Task[RefreshOutcome]"] = {}
        self._logout_notified = self._session is None
        self.refresh_attempts = 0

    # ------------------------------------------------------------------
    # Session access
    # ------------------------------------------------------------------
    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and self._session.is_authenticated

    @property
    def state(self) -> TokenState:
        session = self._session
        if session is None:
            return TokenState.LOGGED_OUT
        if session.identity in self._inflight:
            return TokenState.REFRESHING
        if self.is_expired(session):
            return TokenState.EXPIRED
        return TokenState.VALID

    def add_listener(self, listener: AuthListener) -> None:
        self._listeners.append(listener)

    def sign_in(self, session: Session) -> None:
        """Adopt a freshly issued session and persist it."""
        self._store.save(session)
        self._session = session
        self._logout_notified = False
        logger.info("Signed in as %s", session.email or session.user_id)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------
    def is_expired(self, session: Optional[Session] = None, *, now: Optional[float] = None) -> bool:
        """Return True when the session's access token should be considered stale.

        The embedded ``exp`` claim wins when the token carries one; otherwise
        the age since issue is compared with ``expires_in_seconds``.
        """
        session = session or self._session
        if session is None:
            return True
        current = now if now is not None else self._clock()
        claim = token_expiry_claim(session.access_token)
        if claim is not None:
            return claim <= current
        return session.age_seconds(current) >= session.expires_in_seconds

    # ------------------------------------------------------------------
    # Tokens for callers
    # ------------------------------------------------------------------
    async def get_valid_token(self) -> str:
        """Return a usable access token, refreshing first if it has expired."""
        session = self._session
        if session is None:
            raise AuthExpired()
        if not self.is_expired(session):
            return session.access_token
        logger.info("Access token expired, refreshing before use")
        return await self.renew()

    async def force_refresh(self) -> str:
        """Refresh unconditionally and return the new access token."""
        return await self.renew()

    async def renew(self, rejected_token: Optional[str] = None) -> str:
        """Return a replacement for ``rejected_token``.

        When another caller already swapped in a newer, still valid token the
        rejected one is simply replaced without a second refresh.

        Raises:
            AuthExpired: if no refreshed token can be obtained. The session
                has already been logged out by then.
        """
        session = self._session
        if session is None:
            raise AuthExpired()
        if (
            rejected_token
            and session.access_token != rejected_token
            and not self.is_expired(session)
        ):
            return session.access_token
        outcome = await self.refresh(session)
        if not outcome.success or not outcome.access_token:
            raise AuthExpired()
        return outcome.access_token

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    async def refresh(self, session: Optional[Session] = None) -> RefreshOutcome:
        """Exchange the refresh credential for a new access token.

        Without a refresh credential the session goes straight to LOGGED_OUT
        and no network call is made. Any failed refresh also ends in
        LOGGED_OUT; the session object itself is left untouched.
        """
        session = session or self._session
        if session is None:
            return RefreshOutcome(False, reason="no active session")
        if not session.refresh_token:
            logger.warning("No refresh token available for %s; logging out", session.email)
            self.logout(SESSION_EXPIRED_MESSAGE)
            return RefreshOutcome(False, reason="missing refresh token")

        key = session.identity
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh_once(session))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight refresh for %s", key)
        outcome = await asyncio.shield(task)
        if not outcome.success:
            self.logout(SESSION_EXPIRED_MESSAGE)
        return outcome

    def _forget(self, key: str, task: "asyncio.Task[RefreshOutcome]") -> None:
        if self._inflight.get(key) is task:
            self._inflight.pop(key, None)

    async def _refresh_once(self, session: Session) -> RefreshOutcome:
        self.refresh_attempts += 1
        payload = RefreshRequest(refresh_token=session.refresh_token or "")
        logger.info(
            "Refreshing access token for %s (refresh token %s)",
            session.email,
            _preview(session.refresh_token),
        )
        try:
            response = await self._http.post(
                self._refresh_url, json=payload.model_dump(by_alias=True)
            )
        except httpx.HTTPError as exc:
            logger.error("Token refresh endpoint unreachable: %s", exc)
            return RefreshOutcome(False, reason=f"refresh endpoint unreachable: {exc}")

        if not response.is_success:
            logger.error(
                "Token refresh rejected with status %s: %s",
                response.status_code,
                response.text[:200],
            )
            return RefreshOutcome(False, reason=f"refresh rejected ({response.status_code})")

        try:
            result = RefreshResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Token refresh returned an unusable body: %s", exc)
            return RefreshOutcome(False, reason="refresh response invalid")

        if not result.success or result.tokens is None:
            logger.error("Token refresh reported failure: %s", result.error)
            return RefreshOutcome(False, reason=result.error or "refresh failed")

        tokens = result.tokens
        session.apply_refresh(
            tokens.access_token,
            expires_in=tokens.expires_in,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            issued_at=self._clock(),
        )
        self._store.save(session)
        logger.info("Access token refreshed (new token %s)", _preview(tokens.access_token))
        for listener in list(self._listeners):
            listener.on_token_refreshed(session)
        return RefreshOutcome(True, access_token=tokens.access_token)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------
    def logout(self, reason: str = "signed out") -> None:
        """Clear the persisted session and notify listeners once per session."""
        self._store.clear()
        self._session = None
        if self._logout_notified:
            return
        self._logout_notified = True
        if not self._listeners:
            logger.warning("Logged out (%s) with no auth listener registered", reason)
            return
        logger.info("Logged out: %s", reason)
        for listener in list(self._listeners):
            listener.on_logged_out(reason)
