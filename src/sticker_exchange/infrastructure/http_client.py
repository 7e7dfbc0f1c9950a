"""httpx client factory shared by every collaborator that speaks HTTP.

Usage:
    from sticker_exchange.infrastructure.http_client import build_http_client

    async with build_http_client(timeout_seconds=10.0) as http:
        response = await http.get("https://plc.directory/did:plc:abc")
"""

from __future__ import annotations

import httpx

USER_AGENT = "sticker-exchange/0.1.0"


def build_http_client(timeout_seconds: float = 10.0, **kwargs) -> httpx.AsyncClient:
    """Create a client with the project's defaults (timeout, user agent, redirects).

    Extra keyword arguments go to `httpx.AsyncClient`, e.g. `transport=` in tests.
    """
    headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        headers=headers,
        follow_redirects=True,
        **kwargs,
    )
