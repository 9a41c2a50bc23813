"""Client for the REST backend and its cache-invalidation hook."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..errors import AccessLayerError, BusinessFailure, HttpFailure
from ..wire import CacheInvalidationRequest, ModernEnvelope
from .executor import AuthenticatedExecutor, RequestDescriptor

logger = logging.getLogger(__name__)

ArgsMapper = Callable[[Sequence[Any]], Optional[Dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class ModernRoute:
    """Where an operation lives on the REST backend.

    ``params`` and ``body`` map the operation's positional arguments to the
    query string and JSON body. ``None`` values are dropped from the query.
    """

    method: str
    path: str
    params: Optional[ArgsMapper] = None
    body: Optional[ArgsMapper] = None


class ModernTransport:
    """Sends resource-oriented JSON requests under one base URL."""

    def __init__(self, base_url: str, executor: AuthenticatedExecutor) -> None:
        self.base_url = base_url.rstrip("/")
        self._executor = executor

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def describe(self, route: ModernRoute, args: Sequence[Any]) -> RequestDescriptor:
        params = None
        if route.params is not None:
            params = {k: v for k, v in (route.params(args) or {}).items() if v is not None}
        return RequestDescriptor(
            method=route.method,
            url=self.url_for(route.path),
            params=params or None,
            json=route.body(args) if route.body is not None else None,
            label=f"{route.method} {route.path}",
        )

    async def call(self, route: ModernRoute, args: Sequence[Any], token: Optional[str]) -> Any:
        """Run ``route`` and return the ``data`` member of the envelope.

        Raises:
            HttpFailure: on a non-2xx answer or an unreadable body.
            BusinessFailure: on a 2xx envelope reporting ``success: false``.
            TransportUnreachable: when the backend cannot be reached.
            AuthExpired: when the credential cannot be recovered.
        """
        request = self.describe(route, args)
        response = await self._executor.execute(request, token)
        return _unwrap(response, request.label)

    async def invalidate(self, cache_keys: Sequence[str], token: Optional[str]) -> bool:
        """Ask the REST backend to drop cached resources. Never raises."""
        payload = CacheInvalidationRequest(cache_keys=list(cache_keys))
        request = RequestDescriptor(
            method="POST",
            url=self.url_for("/cache/invalidate"),
            json=payload.model_dump(by_alias=True),
            label="cache invalidation",
        )
        try:
            response = await self._executor.execute(request, token, recover_auth=False)
        except AccessLayerError as exc:
            logger.warning("Cache invalidation error (non-critical): %s", exc)
            return False
        if not response.is_success:
            logger.warning(
                "Cache invalidation failed with HTTP %s; continuing", response.status_code
            )
            return False
        logger.info("Invalidated cache keys %s", ", ".join(cache_keys))
        return True


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""


def _unwrap(response: httpx.Response, label: str) -> Any:
    if not response.is_success:
        detail = _error_message(response)
        logger.error("%s failed with HTTP %s %s", label, response.status_code, detail)
        raise HttpFailure(
            response.status_code,
            f"{label} failed: {response.status_code}" + (f" ({detail})" if detail else ""),
            body=response.text,
        )
    if not response.content:
        return None
    try:
        envelope = ModernEnvelope.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise HttpFailure(
            response.status_code, f"{label} returned an unusable body", body=response.text
        ) from exc
    if not envelope.success:
        raise BusinessFailure(envelope.error or f"{label} failed", operation=label)
    return envelope.data
