"""Client for the legacy action-multiplexed automation endpoint."""
from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..errors import HttpFailure, TransportUnreachable
from ..wire import LegacyEnvelope, LegacyRequest
from .executor import AuthenticatedExecutor, RequestDescriptor

logger = logging.getLogger(__name__)

PLAIN_TEXT = "text/plain;charset=utf-8"


def _query(action: str, parameters: Sequence[Any], token: str) -> dict:
    return {
        "function": action,
        "parameters": json.dumps(list(parameters)),
        "token": token,
    }


def _body(action: str, parameters: Sequence[Any], token: str) -> str:
    return LegacyRequest(action=action, parameters=list(parameters), token=token).model_dump_json()


class LegacyTransport:
    """Sends ``{action, parameters, token}`` calls to the single legacy URL.

    Reads go out as GET with the call encoded in the query string, writes as
    a ``text/plain`` POST so the endpoint does not require a preflight.
    """

    def __init__(self, url: str, executor: AuthenticatedExecutor) -> None:
        self.url = url
        self._executor = executor

    def describe(
        self,
        action: str,
        parameters: Sequence[Any],
        token: Optional[str],
        *,
        method: str = "POST",
    ) -> RequestDescriptor:
        params = list(parameters)
        if method.upper() == "GET":
            return RequestDescriptor(
                method="GET",
                url=self.url,
                params=_query(action, params, token or ""),
                embed_token=lambda req, new: replace(req, params=_query(action, params, new)),
                label=action,
            )
        return RequestDescriptor(
            method="POST",
            url=self.url,
            content=_body(action, params, token or ""),
            headers={"Content-Type": PLAIN_TEXT},
            embed_token=lambda req, new: replace(req, content=_body(action, params, new)),
            label=action,
        )

    async def call(
        self,
        action: str,
        parameters: Sequence[Any],
        token: Optional[str],
        *,
        method: str = "POST",
    ) -> LegacyEnvelope:
        """Run one legacy action and return its envelope.

        Raises:
            HttpFailure: on a non-2xx answer or a body that is not an envelope.
            TransportUnreachable: when the endpoint cannot be reached.
            AuthExpired: when the credential cannot be recovered.
        """
        request = self.describe(action, parameters, token, method=method)
        logger.debug("Legacy %s %s", request.method, action)
        response = await self._executor.execute(request, token)
        return _envelope(response, action)

    async def health_check(self) -> bool:
        """POST the ``healthCheck`` action; healthy iff success and a version come back."""
        try:
            response = await self._executor.execute(
                RequestDescriptor(
                    method="POST",
                    url=self.url,
                    content=json.dumps({"action": "healthCheck"}),
                    headers={"Content-Type": PLAIN_TEXT},
                    label="healthCheck",
                )
            )
            envelope = _envelope(response, "healthCheck")
        except (HttpFailure, TransportUnreachable) as exc:
            logger.error("Legacy health check failed: %s", exc)
            return False
        healthy = envelope.success and bool(envelope.version)
        if healthy:
            logger.info("Legacy backend healthy, version %s", envelope.version)
        else:
            logger.warning("Legacy backend responding but unhealthy: %s", envelope.message)
        return healthy


def _envelope(response: httpx.Response, action: str) -> LegacyEnvelope:
    if not response.is_success:
        logger.error(
            "Legacy %s failed with HTTP %s: %s",
            action,
            response.status_code,
            response.text[:500],
        )
        raise HttpFailure(
            response.status_code,
            f"HTTP error {response.status_code} from legacy action {action}",
            body=response.text,
        )
    try:
        return LegacyEnvelope.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise HttpFailure(
            response.status_code,
            f"Legacy action {action} returned an unusable body",
            body=response.text,
        ) from exc
