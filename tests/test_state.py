import logging

from kani_client.services.schemas import Endpoint
from kani_client.state.app_state import (
    CaptureState,
    ConnectionState,
    Effect,
    EffectKind,
    EventKind,
    SessionEvent,
    SessionState,
    SessionStore,
    reduce,
)

ENDPOINT = Endpoint("http://assistant.test/")


def _connected() -> SessionState:
    return SessionState(connection=ConnectionState.CONNECTED, endpoint=ENDPOINT)


def _kinds(effects):
    return [effect.kind for effect in effects]


def test_endpoint_is_normalized():
    assert ENDPOINT.base_url == "http://assistant.test"
    assert Endpoint("  http://assistant.test:8080// ").base_url == "http://assistant.test:8080"


def test_connect_lifecycle():
    state, effects = reduce(SessionState(), SessionEvent(EventKind.CONNECT_REQUESTED, endpoint=ENDPOINT))
    assert state.connection is ConnectionState.CONNECTING
    assert effects == [Effect(EffectKind.CONNECTION_CHANGED, ConnectionState.CONNECTING)]

    state, effects = reduce(state, SessionEvent(EventKind.PROBE_SUCCEEDED))
    assert state.connected
    assert state.endpoint == ENDPOINT
    assert effects == [Effect(EffectKind.CONNECTION_CHANGED, ConnectionState.CONNECTED)]


def test_failed_probe_returns_to_disconnected():
    state, _ = reduce(SessionState(), SessionEvent(EventKind.CONNECT_REQUESTED, endpoint=ENDPOINT))
    state, effects = reduce(state, SessionEvent(EventKind.PROBE_FAILED, error="refused"))
    assert state.connection is ConnectionState.DISCONNECTED
    assert state.endpoint is None
    assert _kinds(effects) == [EffectKind.CONNECTION_CHANGED]


def test_endpoint_is_fixed_once_connected():
    other = Endpoint("http://elsewhere.test")
    state, effects = reduce(_connected(), SessionEvent(EventKind.CONNECT_REQUESTED, endpoint=other))
    assert state.endpoint == ENDPOINT
    assert effects == []


def test_capture_requires_connection():
    state, effects = reduce(SessionState(), SessionEvent(EventKind.CAPTURE_START))
    assert state.capture is CaptureState.IDLE
    assert effects == []


def test_capture_start_and_interim_preview():
    state, effects = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    assert state.recording
    assert _kinds(effects) == [EffectKind.RECORDING_CHANGED, EffectKind.START_ENGINE]

    state, effects = reduce(state, SessionEvent(EventKind.INTERIM_RESULT, text="こん"))
    assert state.preview == "こん"
    assert effects == [Effect(EffectKind.PREVIEW_CHANGED, "こん")]

    state, effects = reduce(state, SessionEvent(EventKind.CAPTURE_START))
    assert effects == []


def test_final_result_finalizes_once():
    state, _ = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    state, _ = reduce(state, SessionEvent(EventKind.INTERIM_RESULT, text="こん"))
    state, effects = reduce(state, SessionEvent(EventKind.FINAL_RESULT, text=" こんにちは "))

    assert state.capture is CaptureState.IDLE
    assert state.preview == ""
    assert effects == [
        Effect(EffectKind.UTTERANCE_FINALIZED, "こんにちは"),
        Effect(EffectKind.RECORDING_CHANGED, False),
        Effect(EffectKind.PREVIEW_CHANGED, ""),
    ]

    state, effects = reduce(state, SessionEvent(EventKind.FINAL_RESULT, text="again"))
    assert effects == []


def test_blank_final_result_does_not_finalize():
    state, _ = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    state, effects = reduce(state, SessionEvent(EventKind.FINAL_RESULT, text="   "))
    assert not state.recording
    assert EffectKind.UTTERANCE_FINALIZED not in _kinds(effects)


def test_stop_enters_finalizing_and_is_idempotent():
    state, _ = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    state, effects = reduce(state, SessionEvent(EventKind.CAPTURE_STOP))
    assert state.capture is CaptureState.FINALIZING
    assert _kinds(effects) == [EffectKind.STOP_ENGINE]

    state, effects = reduce(state, SessionEvent(EventKind.CAPTURE_STOP))
    assert state.capture is CaptureState.FINALIZING
    assert effects == []

    state, effects = reduce(state, SessionEvent(EventKind.ENGINE_END))
    assert state.capture is CaptureState.IDLE
    assert _kinds(effects) == [EffectKind.RECORDING_CHANGED]


def test_stop_while_idle_is_absorbed():
    state, effects = reduce(_connected(), SessionEvent(EventKind.CAPTURE_STOP))
    assert state == _connected()
    assert effects == []


def test_engine_error_resets_capture():
    state, _ = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    state, effects = reduce(state, SessionEvent(EventKind.ENGINE_ERROR, error="no-speech"))
    assert state.capture is CaptureState.IDLE
    assert effects == [Effect(EffectKind.RECORDING_CHANGED, False)]


def test_disconnect_stops_active_capture():
    state, _ = reduce(_connected(), SessionEvent(EventKind.CAPTURE_START))
    state, effects = reduce(state, SessionEvent(EventKind.DISCONNECT))
    assert state == SessionState()
    assert _kinds(effects) == [
        EffectKind.STOP_ENGINE,
        EffectKind.RECORDING_CHANGED,
        EffectKind.CONNECTION_CHANGED,
    ]


def test_store_queues_events_dispatched_from_listeners():
    store = SessionStore(_connected())
    seen: list[EffectKind] = []

    def listener(effect: Effect) -> None:
        seen.append(effect.kind)
        if effect.kind is EffectKind.START_ENGINE:
            # Engine that reports a result synchronously while starting.
            store.dispatch(SessionEvent(EventKind.FINAL_RESULT, text="はい"))

    store.subscribe(listener)
    state = store.dispatch(SessionEvent(EventKind.CAPTURE_START))

    assert seen == [
        EffectKind.RECORDING_CHANGED,
        EffectKind.START_ENGINE,
        EffectKind.UTTERANCE_FINALIZED,
        EffectKind.RECORDING_CHANGED,
    ]
    assert state.capture is CaptureState.IDLE


def test_failing_listener_does_not_strand_queued_events(caplog):
    store = SessionStore(_connected())
    seen: list[EffectKind] = []

    def engine(effect: Effect) -> None:
        if effect.kind is EffectKind.START_ENGINE:
            store.dispatch(SessionEvent(EventKind.ENGINE_END))
            raise RuntimeError("listener crashed")

    store.subscribe(engine)
    store.subscribe(lambda effect: seen.append(effect.kind))

    with caplog.at_level(logging.ERROR):
        state = store.dispatch(SessionEvent(EventKind.CAPTURE_START))

    assert state.capture is CaptureState.IDLE
    assert seen == [EffectKind.RECORDING_CHANGED, EffectKind.START_ENGINE, EffectKind.RECORDING_CHANGED]
    assert "listener crashed" in caplog.text

    seen.clear()
    state = store.dispatch(SessionEvent(EventKind.INTERIM_RESULT, text="late"))
    assert state.capture is CaptureState.IDLE
    assert seen == []
