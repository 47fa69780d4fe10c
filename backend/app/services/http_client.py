"""
Shared long-lived httpx.AsyncClient for push gateway calls.
Created in app lifespan; each gateway call carries its own bounded timeout.
"""
from __future__ import annotations

import httpx

from app.config import settings

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Return the shared async HTTP client. Must be initialized via init_http_client() first."""
    if _http_client is None:
        raise RuntimeError("HTTP client not initialized; ensure app lifespan has run init_http_client().")
    return _http_client


def init_http_client(timeout: float | None = None) -> httpx.AsyncClient:
    """Create and store the shared client (idempotent)."""
    global _http_client
    if _http_client is not None:
        return _http_client
    _http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout or settings.push_gateway_timeout_seconds),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
