"""
Push gateway client: send (device token, payload), get a delivery id or a typed error.
invalid_token is permanent; rate_limited and unreachable are retryable.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from app.config import settings
from app.core.errors import PermanentDeliveryError, TransientDeliveryError
from app.services.http_client import get_http_client

logger = logging.getLogger(__name__)

ERROR_INVALID_TOKEN = "invalid_token"
ERROR_RATE_LIMITED = "rate_limited"
ERROR_UNREACHABLE = "unreachable"

INVALID_TOKEN_STATUSES = (400, 404, 410)


class PushGateway(Protocol):
    async def send(self, device_token: str, payload: dict[str, Any]) -> str:
        """Return the gateway delivery id; raise TransientDeliveryError / PermanentDeliveryError."""
        ...


def _error_code(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        code = data.get("error") or data.get("reason")
        return str(code) if code else None
    return None


class HttpPushGateway:
    """JSON-over-HTTP gateway: POST {token, payload} with a bearer key."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url or settings.push_gateway_url
        self.api_key = settings.push_gateway_api_key if api_key is None else api_key
        self.timeout = timeout or settings.push_gateway_timeout_seconds
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def send(self, device_token: str, payload: dict[str, Any]) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            r = await self.client.post(
                self.url,
                json={"token": device_token, "payload": payload},
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(ERROR_UNREACHABLE, f"gateway timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientDeliveryError(ERROR_UNREACHABLE, f"gateway transport error: {e}") from e

        if r.status_code == 429:
            raise TransientDeliveryError(ERROR_RATE_LIMITED, "gateway rate limited")
        if r.status_code >= 500:
            logger.warning("Push gateway %s -> %s body=%s", self.url, r.status_code, (r.text or "")[:300])
            raise TransientDeliveryError(ERROR_UNREACHABLE, f"gateway returned {r.status_code}")
        if r.status_code >= 400:
            code = _error_code(r) or ERROR_INVALID_TOKEN
            if r.status_code in INVALID_TOKEN_STATUSES or code == ERROR_INVALID_TOKEN:
                raise PermanentDeliveryError(ERROR_INVALID_TOKEN, f"gateway rejected token ({code})")
            raise TransientDeliveryError(code, f"gateway returned {r.status_code}")

        # 2xx: accepted by the gateway even when the body is not JSON
        try:
            data = r.json() if r.content else {}
        except ValueError:
            logger.warning("Push gateway %s -> %s non-JSON body=%s", self.url, r.status_code, (r.text or "")[:200])
            data = {}
        if not isinstance(data, dict):
            data = {}
        delivery_id = data.get("delivery_id")
        if data.get("success") is False:
            code = _error_code(r) or ERROR_UNREACHABLE
            if code == ERROR_INVALID_TOKEN:
                raise PermanentDeliveryError(code, "gateway rejected token")
            raise TransientDeliveryError(code, "gateway reported failure")
        return str(delivery_id or r.headers.get("apns-id") or "")


def build_payload(entry_id: int, text: str, category_key: str | None, affirmation_id: int | None) -> dict[str, Any]:
    return {
        "title": settings.push_title,
        "body": (text or "").strip()[:200],
        "data": {
            "schedule_id": entry_id,
            "affirmation_id": affirmation_id,
            "category": category_key,
        },
    }
