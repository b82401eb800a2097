"""HTTP client used to talk to the assistant service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Sequence

import httpx

from ..config.settings import AppSettings
from .errors import ConnectivityError, ExchangeTimeout, ProtocolError, TransportFailure
from .schemas import ChatRequest, ConverseRequest, Endpoint

LOGGER = logging.getLogger(__name__)


def normalize_reply(data: Any, keys: Sequence[str]) -> str:
    """Return the first populated reply field, or the whole value serialized.

    The backend contract is not stable across versions, so the reply may sit
    under any of ``keys`` or be an arbitrary JSON value.
    """
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if value:
                return value if isinstance(value, str) else _serialize(value)
    return _serialize(data)


def _serialize(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class AssistantAPI:
    """Async client for the assistant backend bound to one endpoint."""

    def __init__(
        self,
        settings: AppSettings,
        endpoint: Endpoint,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=endpoint.base_url,
            verify=settings.server.verify_ssl,
            timeout=httpx.Timeout(settings.server.exchange_timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def probe(self) -> int:
        """Check that the backend answers on its health path.

        A 404 still proves the service is alive: older backends do not
        implement the health route.
        """
        server = self.settings.server
        try:
            response = await asyncio.wait_for(
                self._client.get(server.health_path, timeout=server.probe_timeout),
                timeout=server.probe_timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ConnectivityError(f"No answer within {server.probe_timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(str(exc) or exc.__class__.__name__) from exc

        if response.is_success or response.status_code == httpx.codes.NOT_FOUND:
            LOGGER.info("Health probe on %s answered HTTP %s", self.endpoint.base_url, response.status_code)
            return response.status_code
        raise ConnectivityError(f"HTTP {response.status_code}")

    async def send(self, text: str) -> str:
        """Send an utterance and return the assistant reply.

        Raises ProtocolError when the primary endpoint rejects the request and
        ExchangeTimeout when it misses the deadline. Any other primary failure
        goes to the fallback endpoint, which never raises.
        """
        try:
            return await self._send_primary(text)
        except TransportFailure as exc:
            LOGGER.info("Primary exchange unavailable (%s), trying fallback.", exc)
            return await self._send_fallback(text)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _send_primary(self, text: str) -> str:
        payload = ChatRequest(message=text).to_payload()
        try:
            response = await self._post(self.settings.server.chat_path, payload)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ExchangeTimeout("Request timed out") from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(str(exc) or exc.__class__.__name__) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise TransportFailure("chat endpoint not found")
        if not response.is_success:
            body = response.text.strip()
            raise ProtocolError(body or f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            snippet = response.text[:200]
            raise TransportFailure(f"Non-JSON reply: {snippet}") from exc
        return normalize_reply(data, self.settings.protocol.primary_reply_keys)

    async def _send_fallback(self, text: str) -> str:
        payload = ConverseRequest(text=text).to_payload()
        try:
            response = await self._post(self.settings.server.converse_path, payload)
            if response.is_success:
                return normalize_reply(response.json(), self.settings.protocol.fallback_reply_keys)
            LOGGER.warning("Fallback endpoint answered HTTP %s", response.status_code)
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            LOGGER.warning("Fallback exchange failed: %r", exc)
        return self.settings.protocol.fallback_reply

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        return await asyncio.wait_for(
            self._client.post(path, json=payload),
            timeout=self.settings.server.exchange_timeout,
        )
