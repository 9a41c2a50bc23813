"""Authenticated request execution with one refresh-and-retry on 401."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

import httpx

from ..auth.tokens import TokenLifecycleManager
from ..errors import AuthExpired, SESSION_EXPIRED_MESSAGE, TransportUnreachable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Everything needed to (re)send one HTTP request.

    ``embed_token`` rebuilds the descriptor for transports that carry the
    credential inside the body or query string, so a retry after refresh
    sends the new token there as well as in the bearer header.
    """

    method: str
    url: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    content: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    embed_token: Optional[Callable[["RequestDescriptor", str], "RequestDescriptor"]] = None
    label: str = ""

    def bind(self, token: Optional[str]) -> "RequestDescriptor":
        if not token:
            return self
        bound = self.embed_token(self, token) if self.embed_token else self
        headers = dict(bound.headers)
        headers["Authorization"] = f"Bearer {token}"
        return replace(bound, headers=headers)


class AuthenticatedExecutor:
    """Sends requests with the current credential, recovering once from 401."""

    max_attempts = 2

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        tokens: TokenLifecycleManager,
        *,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._http = http_client
        self._tokens = tokens
        self._timeout = timeout_seconds

    async def execute(
        self,
        request: RequestDescriptor,
        token: Optional[str] = None,
        is_retry: bool = False,
        recover_auth: bool = True,
    ) -> httpx.Response:
        """Send ``request`` and return any non-401 response untouched.

        With ``recover_auth`` off the token is sent as given and a 401 is
        returned like any other response, leaving the session alone.

        Raises:
            AuthExpired: if the credential is rejected after one refresh, or
                cannot be refreshed at all. The session is logged out first.
            TransportUnreachable: on network errors and timeouts.
        """
        if not recover_auth:
            return await self._send(request.bind(token))

        if token and not is_retry and self._tokens.is_expired():
            logger.info("Token expired before %s; refreshing first", request.label or request.url)
            token = await self._tokens.renew(token)

        attempt = self.max_attempts if is_retry else 1
        while True:
            response = await self._send(request.bind(token))
            if response.status_code != 401:
                return response
            if attempt >= self.max_attempts:
                break
            attempt += 1
            logger.info("401 from %s; refreshing credential and retrying", request.label or request.url)
            token = await self._tokens.renew(token)

        logger.warning("Credential rejected after refresh for %s", request.label or request.url)
        self._tokens.logout(SESSION_EXPIRED_MESSAGE)
        raise AuthExpired()

    async def _send(self, request: RequestDescriptor) -> httpx.Response:
        try:
            return await asyncio.wait_for(
                self._http.request(
                    request.method,
                    request.url,
                    params=request.params,
                    json=request.json,
                    content=request.content,
                    headers=request.headers,
                ),
                timeout=self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise TransportUnreachable(
                f"{request.method} {request.url} timed out after {self._timeout}s"
            ) from exc
        except httpx.TransportError as exc:
            raise TransportUnreachable(f"{request.method} {request.url} failed: {exc}") from exc
