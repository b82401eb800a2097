"""Push-to-talk dictation driven by a recognition engine."""

from __future__ import annotations

import logging
from typing import Protocol

from ..services.errors import CaptureEngineError
from ..services.schemas import TranscriptEvent
from ..state.app_state import Effect, EffectKind, EventKind, SessionEvent, SessionStore

LOGGER = logging.getLogger(__name__)


class RecognitionListener(Protocol):
    """Callbacks a recognition engine reports to (on the event loop thread)."""

    def on_result(self, event: TranscriptEvent) -> None: ...

    def on_error(self, error: CaptureEngineError) -> None: ...

    def on_end(self) -> None: ...


class RecognitionEngine(Protocol):
    """Speech recognizer for one spoken language.

    After reporting a final result, or once ``stop`` has been handled, the
    engine ends the capture on its own and calls ``on_end``.
    """

    language: str

    def bind(self, listener: RecognitionListener) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class SpeechCaptureController:
    """Turn engine callbacks into at most one finalized utterance per capture."""

    def __init__(self, store: SessionStore, engine: RecognitionEngine | None = None) -> None:
        self.store = store
        self.engine = engine
        if engine is not None:
            engine.bind(self)
        store.subscribe(self._on_effect)

    @property
    def available(self) -> bool:
        return self.engine is not None

    def start(self) -> bool:
        """Begin a capture; a no-op while disconnected or already capturing."""
        if self.engine is None:
            LOGGER.debug("Capture requested but no recognition engine is available.")
            return False
        return self.store.dispatch(SessionEvent(EventKind.CAPTURE_START)).recording

    def stop(self) -> None:
        """Release the capture (idempotent)."""
        self.store.dispatch(SessionEvent(EventKind.CAPTURE_STOP))

    # ------------------------------------------------------------------ #
    # RecognitionListener
    # ------------------------------------------------------------------ #
    def on_result(self, event: TranscriptEvent) -> None:
        kind = EventKind.FINAL_RESULT if event.final else EventKind.INTERIM_RESULT
        self.store.dispatch(SessionEvent(kind, text=event.text))

    def on_error(self, error: CaptureEngineError) -> None:
        LOGGER.warning("Recognition engine error: %s", error)
        self.store.dispatch(SessionEvent(EventKind.ENGINE_ERROR, error=str(error)))

    def on_end(self) -> None:
        self.store.dispatch(SessionEvent(EventKind.ENGINE_END))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _on_effect(self, effect: Effect) -> None:
        if self.engine is None:
            return
        if effect.kind is EffectKind.START_ENGINE:
            try:
                self.engine.start()
            except Exception as exc:
                self.on_error(CaptureEngineError(str(exc) or exc.__class__.__name__))
        elif effect.kind is EffectKind.STOP_ENGINE:
            try:
                self.engine.stop()
            except Exception as exc:
                self.on_error(CaptureEngineError(str(exc) or exc.__class__.__name__))
