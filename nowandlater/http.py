"""Shared ``httpx.AsyncClient`` construction."""
from __future__ import annotations

from typing import Dict, Optional

import httpx

from .config import Settings

USER_AGENT = "now-and-later/0.1"


def build_async_client(
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    """Return the client every backend call goes through.

    Redirects are followed because the legacy endpoint answers POSTs with a
    redirect to the script's content host.
    """
    base_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if headers:
        base_headers.update(headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        follow_redirects=True,
        headers=base_headers,
        transport=transport,
    )
