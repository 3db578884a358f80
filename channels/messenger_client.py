"""
Messenger Send API client.

Thin async wrapper over the Graph API `/me/messages` endpoint:
- send_message: text, attachment, template and quick-reply payloads
- send_action: typing_on / typing_off / mark_seen sender actions
- appsecret_proof signing when an app secret is configured

One request per call. Errors surface as MessengerAPIError and are left to
the caller; there is no retry here.

API Docs: https://developers.facebook.com/docs/messenger-platform/reference/send-api/
"""
from __future__ import annotations

import hashlib
import hmac
import structlog
from typing import Any, Optional

import httpx

from channels.base import MessengerAPIError

logger = structlog.get_logger()


class MessengerClient:
    """Graph API client for the Messenger Send API."""

    BASE_URL = "https://graph.facebook.com"

    def __init__(
        self,
        access_token: str,
        app_secret: str = "",
        graph_version: str = "v2.6",
        timeout: float = 30.0,
        base_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.app_secret = app_secret
        self.graph_version = graph_version
        self.timeout = timeout
        self.base_url = f"{base_url or self.BASE_URL}/{graph_version}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    @property
    def appsecret_proof(self) -> str:
        if not self.app_secret:
            return ""
        return hmac.new(
            self.app_secret.encode(), self.access_token.encode(), hashlib.sha256
        ).hexdigest()

    def _params(self) -> dict[str, str]:
        params = {"access_token": self.access_token}
        proof = self.appsecret_proof
        if proof:
            params["appsecret_proof"] = proof
        return params

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        resp = await client.request(method, url, params=self._params(), **kwargs)
        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {"raw_text": resp.text}

        if resp.status_code >= 400:
            error = data.get("error", {}) if isinstance(data, dict) else {}
            logger.error("messenger_api_error", status=resp.status_code, body=resp.text[:500])
            raise MessengerAPIError(
                error.get("message") or f"Send API returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                code=error.get("code", 0),
            )
        return data

    async def send_message(self, recipient_id: str, message: dict[str, Any]) -> dict[str, Any]:
        """Send a message payload; returns {"recipient_id", "message_id"}."""
        body = {"recipient": {"id": recipient_id}, "message": message}
        result = await self._request("POST", "/me/messages", json=body)
        logger.info("messenger_message_sent", to=recipient_id, mid=result.get("message_id"))
        return result

    async def send_action(self, recipient_id: str, action: str) -> dict[str, Any]:
        body = {"recipient": {"id": recipient_id}, "sender_action": action}
        result = await self._request("POST", "/me/messages", json=body)
        logger.debug("messenger_action_sent", to=recipient_id, action=action)
        return result

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
