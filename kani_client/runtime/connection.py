"""Connection lifecycle against the assistant backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..config.settings import AppSettings
from ..services.api import AssistantAPI
from ..services.errors import ConnectivityError
from ..services.schemas import Endpoint
from ..state.app_state import ConnectionState, EventKind, SessionEvent, SessionState, SessionStore

LOGGER = logging.getLogger(__name__)

APIFactory = Callable[[AppSettings, Endpoint], AssistantAPI]


class ConnectionManager:
    """Owns the probe and the API client of the current session."""

    def __init__(
        self,
        settings: AppSettings,
        store: SessionStore,
        *,
        api_factory: APIFactory = AssistantAPI,
    ) -> None:
        self.settings = settings
        self.store = store
        self._api_factory = api_factory
        self._api: AssistantAPI | None = None

    @property
    def api(self) -> AssistantAPI | None:
        """API client of the connected session, if any."""
        return self._api

    async def connect(self, address: str) -> SessionState:
        """Probe ``address`` and unlock the session on success.

        Raises ValueError for an empty address (no request is made) and
        ConnectivityError when the probe fails. The endpoint is fixed once
        connected; further calls leave the session untouched.
        """
        endpoint = Endpoint(address)
        if self.store.state.connection is not ConnectionState.DISCONNECTED:
            LOGGER.info("Connect ignored: session already %s", self.store.state.connection.value)
            return self.store.state

        self.store.dispatch(SessionEvent(EventKind.CONNECT_REQUESTED, endpoint=endpoint))
        api: AssistantAPI | None = None
        try:
            api = self._api_factory(self.settings, endpoint)
            await api.probe()
        except asyncio.CancelledError:
            await self._abandon(api, "cancelled")
            raise
        except ConnectivityError as exc:
            LOGGER.warning("Connection to %s failed: %s", endpoint.base_url, exc)
            await self._abandon(api, str(exc))
            raise
        except Exception as exc:
            # Malformed addresses fail inside the client itself (httpx.InvalidURL).
            LOGGER.warning("Connection to %s failed: %r", endpoint.base_url, exc)
            await self._abandon(api, str(exc))
            raise ConnectivityError(str(exc) or exc.__class__.__name__) from exc

        self._api = api
        LOGGER.info("Connected to %s", endpoint.base_url)
        return self.store.dispatch(SessionEvent(EventKind.PROBE_SUCCEEDED))

    async def disconnect(self) -> SessionState:
        """End the session and release the HTTP client."""
        api, self._api = self._api, None
        if api is not None:
            await api.close()
        return self.store.dispatch(SessionEvent(EventKind.DISCONNECT))

    async def _abandon(self, api: AssistantAPI | None, reason: str) -> None:
        try:
            if api is not None:
                await api.close()
        finally:
            self.store.dispatch(SessionEvent(EventKind.PROBE_FAILED, error=reason))
