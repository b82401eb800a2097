"""Session state model and its pure transition function.

Contract:
    next_state, effects = reduce(current_state, event)

The reducer has no side effects. Effects are intents executed by the
component owning the matching resource (capture engine, presentation).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from ..services.schemas import Endpoint

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connectivity of the session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class CaptureState(str, Enum):
    """Microphone dictation state."""

    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"


class EventKind(str, Enum):
    CONNECT_REQUESTED = "connect_requested"
    PROBE_SUCCEEDED = "probe_succeeded"
    PROBE_FAILED = "probe_failed"
    DISCONNECT = "disconnect"
    CAPTURE_START = "capture_start"
    CAPTURE_STOP = "capture_stop"
    INTERIM_RESULT = "interim_result"
    FINAL_RESULT = "final_result"
    ENGINE_ERROR = "engine_error"
    ENGINE_END = "engine_end"


class EffectKind(str, Enum):
    CONNECTION_CHANGED = "connection_changed"
    START_ENGINE = "start_engine"
    STOP_ENGINE = "stop_engine"
    RECORDING_CHANGED = "recording_changed"
    PREVIEW_CHANGED = "preview_changed"
    UTTERANCE_FINALIZED = "utterance_finalized"


@dataclass(slots=True, frozen=True)
class SessionEvent:
    kind: EventKind
    text: str = ""
    endpoint: Endpoint | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class Effect:
    """Side-effect intent emitted by the reducer."""

    kind: EffectKind
    value: Any = None


@dataclass(slots=True, frozen=True)
class SessionState:
    """Immutable snapshot of the session."""

    connection: ConnectionState = ConnectionState.DISCONNECTED
    endpoint: Endpoint | None = None
    capture: CaptureState = CaptureState.IDLE
    preview: str = ""

    @property
    def connected(self) -> bool:
        return self.connection is ConnectionState.CONNECTED

    @property
    def recording(self) -> bool:
        return self.capture is not CaptureState.IDLE

    def evolve(self, **changes: Any) -> "SessionState":
        return replace(self, **changes)


# ── Transition table ─────────────────────────────────────────────────────
#
# State                  x Event              -> Next state   + Effects
# -------------------------------------------------------------------------
# DISCONNECTED             CONNECT_REQUESTED    -> CONNECTING   + ConnectionChanged
# CONNECTING               PROBE_SUCCEEDED      -> CONNECTED    + ConnectionChanged
# CONNECTING               PROBE_FAILED         -> DISCONNECTED + ConnectionChanged
# CONNECTING|CONNECTED     CONNECT_REQUESTED    -> (unchanged, endpoint is fixed)
# ANY                      DISCONNECT           -> DISCONNECTED + StopEngine?, ConnectionChanged
# IDLE (connected)         CAPTURE_START        -> CAPTURING    + RecordingChanged, StartEngine
# IDLE (not connected)     CAPTURE_START        -> (no-op)
# CAPTURING|FINALIZING     INTERIM_RESULT       -> (same)       + PreviewChanged
# CAPTURING|FINALIZING     FINAL_RESULT         -> IDLE         + UtteranceFinalized, reset
# CAPTURING                CAPTURE_STOP         -> FINALIZING   + StopEngine
# CAPTURING|FINALIZING     ENGINE_ERROR|END     -> IDLE         + reset
# IDLE                     capture events       -> (absorbed)
# FINALIZING               CAPTURE_STOP         -> (absorbed)
# -------------------------------------------------------------------------


def _reset_capture(state: SessionState) -> tuple[SessionState, list[Effect]]:
    effects = [Effect(EffectKind.RECORDING_CHANGED, False)]
    if state.preview:
        effects.append(Effect(EffectKind.PREVIEW_CHANGED, ""))
    return state.evolve(capture=CaptureState.IDLE, preview=""), effects


def reduce(state: SessionState, event: SessionEvent) -> tuple[SessionState, list[Effect]]:
    """Pure reducer: (state, event) -> (next_state, effects)."""
    kind = event.kind

    # ── Connection lifecycle ─────────────────────────────────────────
    if kind is EventKind.CONNECT_REQUESTED:
        if state.connection is not ConnectionState.DISCONNECTED or event.endpoint is None:
            return state, []
        nxt = state.evolve(connection=ConnectionState.CONNECTING, endpoint=event.endpoint)
        return nxt, [Effect(EffectKind.CONNECTION_CHANGED, nxt.connection)]

    if kind is EventKind.PROBE_SUCCEEDED:
        if state.connection is not ConnectionState.CONNECTING:
            return state, []
        nxt = state.evolve(connection=ConnectionState.CONNECTED)
        return nxt, [Effect(EffectKind.CONNECTION_CHANGED, nxt.connection)]

    if kind is EventKind.PROBE_FAILED:
        if state.connection is not ConnectionState.CONNECTING:
            return state, []
        nxt = state.evolve(connection=ConnectionState.DISCONNECTED, endpoint=None)
        return nxt, [Effect(EffectKind.CONNECTION_CHANGED, nxt.connection)]

    if kind is EventKind.DISCONNECT:
        effects: list[Effect] = []
        if state.recording:
            effects.append(Effect(EffectKind.STOP_ENGINE))
            state, reset = _reset_capture(state)
            effects.extend(reset)
        if state.connection is ConnectionState.DISCONNECTED:
            return state, effects
        nxt = state.evolve(connection=ConnectionState.DISCONNECTED, endpoint=None)
        effects.append(Effect(EffectKind.CONNECTION_CHANGED, nxt.connection))
        return nxt, effects

    # ── Speech capture ───────────────────────────────────────────────
    if kind is EventKind.CAPTURE_START:
        if not state.connected or state.recording:
            return state, []
        nxt = state.evolve(capture=CaptureState.CAPTURING, preview="")
        return nxt, [
            Effect(EffectKind.RECORDING_CHANGED, True),
            Effect(EffectKind.START_ENGINE),
        ]

    if not state.recording:
        # Late engine events after the session ended are absorbed.
        return state, []

    if kind is EventKind.INTERIM_RESULT:
        return state.evolve(preview=event.text), [Effect(EffectKind.PREVIEW_CHANGED, event.text)]

    if kind is EventKind.FINAL_RESULT:
        nxt, effects = _reset_capture(state)
        text = event.text.strip()
        if text:
            effects.insert(0, Effect(EffectKind.UTTERANCE_FINALIZED, text))
        return nxt, effects

    if kind is EventKind.CAPTURE_STOP:
        if state.capture is CaptureState.FINALIZING:
            return state, []
        return state.evolve(capture=CaptureState.FINALIZING), [Effect(EffectKind.STOP_ENGINE)]

    if kind in (EventKind.ENGINE_ERROR, EventKind.ENGINE_END):
        return _reset_capture(state)

    return state, []


EffectListener = Callable[[Effect], None]


class SessionStore:
    """Holds the current SessionState and runs events through the reducer.

    Events dispatched while effects are being delivered are queued and
    processed in order once the current event settles. A listener that
    raises is logged and skipped; the remaining listeners and queued events
    still run.
    """

    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state or SessionState()
        self._listeners: list[EffectListener] = []
        self._pending: deque[SessionEvent] = deque()
        self._dispatching = False

    def subscribe(self, listener: EffectListener) -> None:
        """Register a callback receiving every emitted effect."""
        self._listeners.append(listener)

    def dispatch(self, event: SessionEvent) -> SessionState:
        """Apply an event and deliver its effects; return the resulting state."""
        self._pending.append(event)
        if self._dispatching:
            return self.state
        self._dispatching = True
        try:
            while self._pending:
                current = self._pending.popleft()
                self.state, effects = reduce(self.state, current)
                LOGGER.debug("%s -> %s %s", current.kind.value, self.state, [e.kind.value for e in effects])
                for effect in effects:
                    for listener in list(self._listeners):
                        try:
                            listener(effect)
                        except Exception:
                            LOGGER.exception("Effect listener failed on %s", effect.kind.value)
        finally:
            self._pending.clear()
            self._dispatching = False
        return self.state
