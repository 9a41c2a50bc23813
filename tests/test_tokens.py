"""Tests for token expiry, refresh and forced logout."""
import asyncio
import base64
import json
import logging

import httpx
import pytest

from nowandlater.auth.session import MemorySessionStore
from nowandlater.auth.tokens import TokenLifecycleManager, TokenState, token_expiry_claim
from nowandlater.errors import AuthExpired

from conftest import API_BASE_URL, NOW, make_session

REFRESH_URL = f"{API_BASE_URL}/auth/manage?action=refresh"


def _b64(data: dict) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def make_jwt(exp: float) -> str:
    return ".".join([_b64({"alg": "RS256", "typ": "JWT"}), _b64({"sub": "u-1", "exp": exp}), "c2ln"])


def run_with_manager(backend, store, clock, action, listeners=()):
    """Build a manager around a mock transport and run ``action(manager)``."""

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as client:
            manager = TokenLifecycleManager(
                store, client, REFRESH_URL, listeners=listeners, clock=clock
            )
            return manager, await action(manager)

    return asyncio.run(runner())


class TestExpiry:
    """Tests for TokenLifecycleManager.is_expired()"""

    def test_just_issued_session_is_valid(self, clock):
        """A session issued seconds ago is not expired."""
        store = MemorySessionStore(make_session(age=10))
        manager = TokenLifecycleManager(store, None, REFRESH_URL, clock=clock)

        assert manager.is_expired() is False
        assert manager.state is TokenState.VALID

    @pytest.mark.parametrize("age", [3600, 3601, 3700, 86400])
    def test_elapsed_lifetime_is_expired(self, clock, age):
        """Once expires_in seconds have elapsed the session is expired."""
        store = MemorySessionStore(make_session(age=age))
        manager = TokenLifecycleManager(store, None, REFRESH_URL, clock=clock)

        assert manager.is_expired() is True
        assert manager.state is TokenState.EXPIRED

    def test_missing_session_counts_as_expired(self, clock):
        manager = TokenLifecycleManager(MemorySessionStore(), None, REFRESH_URL, clock=clock)

        assert manager.is_expired() is True
        assert manager.state is TokenState.LOGGED_OUT

    def test_embedded_expiry_claim_wins_over_age(self, clock):
        """A signed token's exp claim overrides the issue-time arithmetic."""
        stale_claim = make_session(age=10, access_token=make_jwt(NOW - 5))
        fresh_claim = make_session(age=7200, access_token=make_jwt(NOW + 600))
        manager = TokenLifecycleManager(MemorySessionStore(), None, REFRESH_URL, clock=clock)

        assert manager.is_expired(stale_claim) is True
        assert manager.is_expired(fresh_claim) is False

    def test_expiry_claim_ignores_opaque_tokens(self):
        assert token_expiry_claim("ya29.opaque-access-token") is None
        assert token_expiry_claim("") is None
        assert token_expiry_claim(make_jwt(NOW)) == NOW


class TestRefresh:
    """Tests for TokenLifecycleManager.refresh()"""

    def test_refresh_replaces_access_token_and_keeps_refresh_token(self, backend, clock, listener):
        """Success swaps the access token and persists the session."""
        store = MemorySessionStore(make_session(age=3700))
        clock.advance(5)

        manager, outcome = run_with_manager(
            backend, store, clock, lambda m: m.refresh(), listeners=[listener]
        )

        assert outcome.success is True
        assert outcome.access_token == "fresh-token-1"
        assert backend.refresh_calls == [{"refreshToken": "refresh-1"}]
        assert manager.session.access_token == "fresh-token-1"
        assert manager.session.refresh_token == "refresh-1"
        assert manager.session.token_issued_at == NOW + 5
        assert store.load().access_token == "fresh-token-1"
        assert listener.refreshed == ["fresh-token-1"]
        assert manager.state is TokenState.VALID

    def test_missing_refresh_token_logs_out_without_network(self, backend, clock, listener):
        """No refresh credential means LOGGED_OUT and zero network calls."""
        store = MemorySessionStore(make_session(refresh_token=None))

        manager, outcome = run_with_manager(
            backend, store, clock, lambda m: m.refresh(), listeners=[listener]
        )

        assert outcome.success is False
        assert backend.refresh_calls == []
        assert manager.session is None
        assert store.load() is None
        assert listener.logouts == ["Session expired - please sign in again"]

    def test_rejected_refresh_logs_out_once(self, backend, clock, listener):
        """A rejected refresh clears storage and notifies the listener exactly once."""
        backend.refresh_ok = False
        session = make_session(age=3700)
        store = MemorySessionStore(session)

        async def twice(manager):
            first = await manager.refresh()
            manager.logout("again")
            return first

        manager, outcome = run_with_manager(backend, store, clock, twice, listeners=[listener])

        assert outcome.success is False
        assert len(backend.refresh_calls) == 1
        assert store.load() is None
        assert store.clear_count >= 1
        assert len(listener.logouts) == 1
        assert manager.state is TokenState.LOGGED_OUT

    def test_concurrent_refreshes_share_one_request(self, backend, clock):
        """Callers arriving while a refresh is in flight join it."""
        backend.refresh_delay = 0.05
        store = MemorySessionStore(make_session(age=3700))

        async def concurrent(manager):
            return await asyncio.gather(*(manager.refresh() for _ in range(5)))

        manager, outcomes = run_with_manager(backend, store, clock, concurrent)

        assert len(backend.refresh_calls) == 1
        assert manager.refresh_attempts == 1
        assert {o.access_token for o in outcomes} == {"fresh-token-1"}
        assert all(o.success for o in outcomes)

    def test_unreadable_refresh_body_is_a_failure(self, clock, listener):
        def handler(request):
            return httpx.Response(200, text="not json")

        store = MemorySessionStore(make_session(age=3700))
        manager, outcome = run_with_manager(
            handler, store, clock, lambda m: m.refresh(), listeners=[listener]
        )

        assert outcome.success is False
        assert outcome.reason == "refresh response invalid"
        assert manager.session is None


class TestTokensForCallers:
    """Tests for get_valid_token() and renew()"""

    def test_valid_token_returned_without_refresh(self, backend, clock):
        store = MemorySessionStore(make_session(age=10))

        _, token = run_with_manager(backend, store, clock, lambda m: m.get_valid_token())

        assert token == "token-1"
        assert backend.refresh_calls == []

    def test_expired_token_refreshed_before_use(self, backend, clock):
        store = MemorySessionStore(make_session(age=3700))

        _, token = run_with_manager(backend, store, clock, lambda m: m.get_valid_token())

        assert token == "fresh-token-1"
        assert len(backend.refresh_calls) == 1

    def test_signed_out_raises_auth_expired(self, backend, clock):
        with pytest.raises(AuthExpired):
            run_with_manager(backend, MemorySessionStore(), clock, lambda m: m.get_valid_token())
        assert backend.refresh_calls == []

    def test_force_refresh_replaces_a_valid_token(self, backend, clock):
        store = MemorySessionStore(make_session(age=10))

        manager, token = run_with_manager(backend, store, clock, lambda m: m.force_refresh())

        assert token == "fresh-token-1"
        assert len(backend.refresh_calls) == 1
        assert manager.session.access_token == "fresh-token-1"
        assert store.load().access_token == "fresh-token-1"

    def test_renew_skips_refresh_when_token_already_replaced(self, backend, clock):
        """A 401 for an old token is answered with the newer one already held."""
        store = MemorySessionStore(make_session(age=10, access_token="token-2"))

        _, token = run_with_manager(backend, store, clock, lambda m: m.renew("token-1"))

        assert token == "token-2"
        assert backend.refresh_calls == []

    def test_renew_failure_raises_auth_expired(self, backend, clock, listener):
        backend.refresh_ok = False
        store = MemorySessionStore(make_session(age=10))

        with pytest.raises(AuthExpired, match="sign in again"):
            run_with_manager(
                backend, store, clock, lambda m: m.renew("token-1"), listeners=[listener]
            )
        assert listener.logouts == ["Session expired - please sign in again"]


class TestLogout:
    """Tests for TokenLifecycleManager.logout()"""

    def test_logout_without_listener_is_logged(self, clock, caplog):
        """With nobody listening the logout is still surfaced in the log."""
        store = MemorySessionStore(make_session())
        manager = TokenLifecycleManager(store, None, REFRESH_URL, clock=clock)

        with caplog.at_level(logging.WARNING, logger="nowandlater.auth.tokens"):
            manager.logout("expired")

        assert store.load() is None
        assert "no auth listener registered" in caplog.text

    def test_sign_in_rearms_logout_notification(self, clock, listener):
        store = MemorySessionStore(make_session())
        manager = TokenLifecycleManager(store, None, REFRESH_URL, listeners=[listener], clock=clock)

        manager.logout("first")
        manager.sign_in(make_session(access_token="token-9"))
        manager.logout("second")

        assert listener.logouts == ["first", "second"]
        assert store.save_count == 1
