"""Orchestrates connection, exchange, capture and speech for one session."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional

from ..config.settings import AppSettings
from ..services.api import AssistantAPI
from ..services.errors import ConnectivityError
from ..services.schemas import Role, TurnResult, Utterance, UtteranceSource
from ..state.app_state import Effect, EffectKind, SessionState, SessionStore
from ..utils.trace import turn_scope
from .capture import RecognitionEngine, SpeechCaptureController
from .connection import APIFactory, ConnectionManager
from .presentation import Presentation
from .speech import SpeechOutputController, SpeechOutputEngine

LOGGER = logging.getLogger(__name__)

EMPTY_ADDRESS_PROMPT = "Please enter the assistant address."
NOT_CONNECTED_MESSAGE = "Not connected to the assistant."


class SessionOrchestrator:
    """Drive turns from typed or spoken input through to transcript and speech.

    Every coroutine runs on ``self.loop``. When no loop is given the
    orchestrator owns one and runs it in a daemon thread; the ``request_*``
    and ``*_listening`` helpers are then safe to call from the UI thread.
    """

    def __init__(
        self,
        settings: AppSettings,
        presentation: Presentation,
        *,
        api_factory: APIFactory = AssistantAPI,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.settings = settings
        self.presentation = presentation
        if loop is not None:
            self.loop = loop
            self._owns_loop = False
            self._loop_thread: Optional[threading.Thread] = None
        else:
            self.loop = asyncio.new_event_loop()
            self._owns_loop = True
            self._loop_thread = threading.Thread(target=self._run_loop, name="kani-session", daemon=True)
            self._loop_thread.start()

        self.store = SessionStore()
        self.store.subscribe(self._on_effect)
        self.connection = ConnectionManager(settings, self.store, api_factory=api_factory)
        self.capture = SpeechCaptureController(self.store)
        self.speech = SpeechOutputController(settings.speech)

        self._turn_lock = asyncio.Lock()
        self._turn_tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #
    def attach_engines(
        self,
        *,
        capture: RecognitionEngine | None = None,
        output: SpeechOutputEngine | None = None,
    ) -> None:
        """Plug in the host speech engines (either may be missing)."""
        if capture is not None:
            capture.bind(self.capture)
            self.capture.engine = capture
        if output is not None:
            self.speech.engine = output

    @property
    def state(self) -> SessionState:
        return self.store.state

    # ------------------------------------------------------------------ #
    # Session operations (event loop)
    # ------------------------------------------------------------------ #
    async def connect(self, address: str) -> bool:
        """Connect to ``address`` and report the outcome in the transcript."""
        was_idle = not self.state.connected
        try:
            state = await self.connection.connect(address)
        except ValueError:
            self.presentation.append_message(Role.ASSISTANT, EMPTY_ADDRESS_PROMPT)
            return False
        except ConnectivityError as exc:
            self.presentation.append_message(Role.ASSISTANT, f"Connection failed: {exc}")
            return False
        if was_idle and state.connected and state.endpoint is not None:
            self.presentation.append_message(
                Role.ASSISTANT,
                f"Connected to the assistant ({state.endpoint.base_url}).",
            )
        return state.connected

    async def disconnect(self) -> None:
        """End the session; input is locked until the next connect."""
        self.speech.cancel()
        await self.connection.disconnect()

    async def submit_text(self, text: str) -> TurnResult | None:
        """Run a turn for typed input; blank input or no connection is ignored."""
        return await self._submit(Utterance(text.strip(), UtteranceSource.USER))

    async def submit_voice(self, text: str) -> TurnResult | None:
        """Run a turn for a finalized speech transcript."""
        return await self._submit(Utterance(text.strip(), UtteranceSource.VOICE))

    async def run_turn(self, utterance: Utterance) -> TurnResult:
        """Exchange one utterance and record the outcome.

        Turns are serialized: a turn started while another is in flight waits
        for it, so transcript entries keep submission order and only one
        typing placeholder is ever shown.
        """
        async with self._turn_lock:
            with turn_scope() as turn_id:
                return await self._exchange(utterance, turn_id)

    async def shutdown_async(self) -> None:
        for task in list(self._turn_tasks):
            task.cancel()
        self.capture.stop()
        await self.disconnect()

    # ------------------------------------------------------------------ #
    # Thread-safe helpers for the UI thread
    # ------------------------------------------------------------------ #
    def request_connect(self, address: str) -> Future[bool]:
        return self._submit_threadsafe(self.connect(address))

    def request_text(self, text: str) -> Future[TurnResult | None]:
        return self._submit_threadsafe(self.submit_text(text))

    def start_listening(self) -> None:
        self.loop.call_soon_threadsafe(self.capture.start)

    def stop_listening(self) -> None:
        self.loop.call_soon_threadsafe(self.capture.stop)

    def shutdown(self) -> None:
        """Close the session and stop the owned loop."""
        if self.loop.is_running() and self._owns_loop:
            future = self._submit_threadsafe(self.shutdown_async())
            try:
                future.result(timeout=2)
            except Exception as exc:  # pragma: no cover - best effort on exit
                LOGGER.warning("Session shutdown incomplete: %r", exc)
        if self._owns_loop and self._loop_thread:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._loop_thread.join(timeout=1)
            self._loop_thread = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _submit(self, utterance: Utterance) -> TurnResult | None:
        if not utterance.text:
            return None
        if not self.state.connected:
            LOGGER.debug("Input ignored while %s", self.state.connection.value)
            return None
        return await self.run_turn(utterance)

    async def _exchange(self, utterance: Utterance, turn_id: str) -> TurnResult:
        api = self.connection.api
        self.presentation.append_message(Role.USER, utterance.text)
        if api is None:
            self.presentation.append_message(Role.ASSISTANT, f"Error: {NOT_CONNECTED_MESSAGE}")
            return TurnResult(utterance, NOT_CONNECTED_MESSAGE, ok=False, metadata={"turn_id": turn_id})

        LOGGER.info("Turn started (%s input)", utterance.source.value)
        start = self.loop.time()
        self.presentation.show_typing_placeholder()
        reply: str | None = None
        error: Exception | None = None
        try:
            reply = await api.send(utterance.text)
        except Exception as exc:
            error = exc
        finally:
            self.presentation.remove_typing_placeholder()

        elapsed = self.loop.time() - start
        metadata = {"turn_id": turn_id, "elapsed": elapsed}
        if error is not None or reply is None:
            message = (str(error) or error.__class__.__name__) if error is not None else "Empty reply"
            LOGGER.warning("Turn failed after %.2fs: %s", elapsed, message)
            self.presentation.append_message(Role.ASSISTANT, f"Error: {message}")
            return TurnResult(utterance, message, ok=False, metadata=metadata)

        LOGGER.info("Turn completed in %.2fs", elapsed)
        self.presentation.append_message(Role.ASSISTANT, reply)
        self.speech.speak(reply)
        return TurnResult(utterance, reply, ok=True, metadata=metadata)

    def _on_effect(self, effect: Effect) -> None:
        if effect.kind is EffectKind.CONNECTION_CHANGED:
            self.presentation.set_connection_state(effect.value)
        elif effect.kind is EffectKind.RECORDING_CHANGED:
            self.presentation.set_recording(bool(effect.value))
        elif effect.kind is EffectKind.PREVIEW_CHANGED:
            self.presentation.show_preview(effect.value or "")
        elif effect.kind is EffectKind.UTTERANCE_FINALIZED:
            task = self.loop.create_task(self.submit_voice(effect.value))
            self._turn_tasks.add(task)
            task.add_done_callback(self._on_voice_turn_done)

    def _on_voice_turn_done(self, task: asyncio.Task[Any]) -> None:
        self._turn_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:  # pragma: no cover - presentation failure
            LOGGER.error("Voice turn crashed", exc_info=exc)

    def _submit_threadsafe(self, coroutine: Coroutine[Any, Any, Any]) -> Future[Any]:
        return asyncio.run_coroutine_threadsafe(coroutine, self.loop)

    def _run_loop(self) -> None:
        """Run the owned asyncio loop in a dedicated thread."""
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()
