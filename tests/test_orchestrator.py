import asyncio
import json

import httpx
import pytest

from conftest import (
    FakeOutputEngine,
    FakePresentation,
    FakeRecognitionEngine,
    RecordingHandler,
    api_factory,
    json_reply,
    text_reply,
)
from kani_client.config.settings import DEFAULT_FALLBACK_REPLY
from kani_client.runtime.controller import EMPTY_ADDRESS_PROMPT, SessionOrchestrator
from kani_client.services.schemas import TranscriptEvent, VoiceInfo
from kani_client.state.app_state import ConnectionState


def _echo(request):
    body = json.loads(request.content)
    return httpx.Response(200, json={"response": f"echo:{body['message']}"})


def _health(request):
    return httpx.Response(200)


def _build(settings, routes):
    handler = RecordingHandler(routes)
    presentation = FakePresentation()
    orchestrator = SessionOrchestrator(
        settings,
        presentation,
        api_factory=api_factory(handler),
        loop=asyncio.get_running_loop(),
    )
    output = FakeOutputEngine([VoiceInfo("ja-kana", "ja-JP")])
    orchestrator.attach_engines(output=output)
    return orchestrator, presentation, handler, output


async def _connected(settings, routes):
    orchestrator, presentation, handler, output = _build(settings, {"/api/health": _health, **routes})
    assert await orchestrator.connect("http://assistant.test") is True
    presentation.events.clear()
    handler.calls.clear()
    return orchestrator, presentation, handler, output


async def _drain(orchestrator):
    while orchestrator._turn_tasks:
        await asyncio.gather(*list(orchestrator._turn_tasks))


@pytest.mark.asyncio
async def test_connect_with_empty_address_prompts(settings):
    orchestrator, presentation, handler, _ = _build(settings, {})

    assert await orchestrator.connect("  ") is False

    assert presentation.messages == [("assistant", EMPTY_ADDRESS_PROMPT)]
    assert handler.calls == []


@pytest.mark.asyncio
async def test_connect_reports_success(settings):
    orchestrator, presentation, _, _ = _build(settings, {"/api/health": _health})

    assert await orchestrator.connect("http://assistant.test/") is True

    assert presentation.events == [
        ("connection", "connecting"),
        ("connection", "connected"),
        ("message", "assistant", "Connected to the assistant (http://assistant.test)."),
    ]
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_connect_reports_failure(settings):
    orchestrator, presentation, _, _ = _build(settings, {"/api/health": text_reply("down", 500)})

    assert await orchestrator.connect("http://assistant.test") is False

    assert presentation.messages == [("assistant", "Connection failed: HTTP 500")]
    assert not orchestrator.state.connected


@pytest.mark.asyncio
async def test_malformed_address_reports_failure(settings):
    orchestrator, presentation, handler, _ = _build(settings, {"/api/health": _health})

    assert await orchestrator.connect("http://[::1") is False

    assert orchestrator.state.connection is ConnectionState.DISCONNECTED
    assert presentation.events[0] == ("connection", "connecting")
    assert presentation.events[1] == ("connection", "disconnected")
    assert len(presentation.messages) == 1
    assert presentation.messages[0][0] == "assistant"
    assert presentation.messages[0][1].startswith("Connection failed: ")
    assert handler.calls == []

    assert await orchestrator.connect("http://assistant.test") is True
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_text_turn_updates_transcript_then_speaks(settings):
    orchestrator, presentation, handler, output = await _connected(settings, {"/api/chat": _echo})

    result = await orchestrator.submit_text("  ping  ")

    assert result.ok is True
    assert result.text == "echo:ping"
    assert presentation.events == [
        ("message", "user", "ping"),
        ("typing", True),
        ("typing", False),
        ("message", "assistant", "echo:ping"),
    ]
    assert output.audible == "echo:ping"
    assert handler.calls == [("/api/chat", {"message": "ping", "stream": False})]
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_server_error_becomes_error_entry(settings):
    orchestrator, presentation, handler, output = await _connected(
        settings,
        {
            "/api/chat": text_reply("server error", 500),
            "/api/converse": json_reply({"text": "unused"}),
        },
    )

    result = await orchestrator.submit_text("ping")

    assert result.ok is False
    assert presentation.messages == [("user", "ping"), ("assistant", "Error: server error")]
    assert handler.paths() == ["/api/chat"]
    assert presentation.typing == 0
    assert output.spoken == []
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_both_endpoints_failing_show_apology(settings):
    orchestrator, presentation, _, output = await _connected(
        settings, {"/api/converse": text_reply("down", 503)}
    )

    result = await orchestrator.submit_text("ping")

    assert result.ok is True
    assert presentation.messages[-1] == ("assistant", DEFAULT_FALLBACK_REPLY)
    assert output.audible == DEFAULT_FALLBACK_REPLY
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_timeout_becomes_error_entry(settings):
    settings.server.exchange_timeout = 0.05

    async def slow(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={"response": "late"})

    orchestrator, presentation, _, output = await _connected(settings, {"/api/chat": slow})

    result = await orchestrator.submit_text("ping")

    assert result.ok is False
    assert presentation.messages[-1] == ("assistant", "Error: Request timed out")
    assert presentation.typing == 0
    assert output.spoken == []
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_blank_input_is_ignored(settings):
    orchestrator, presentation, handler, _ = await _connected(settings, {"/api/chat": _echo})

    assert await orchestrator.submit_text("   ") is None

    assert presentation.events == []
    assert handler.calls == []
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_input_is_ignored_while_disconnected(settings):
    orchestrator, presentation, handler, _ = _build(settings, {"/api/chat": _echo})

    assert await orchestrator.submit_text("ping") is None

    assert presentation.events == []
    assert handler.calls == []


@pytest.mark.asyncio
async def test_voice_final_result_runs_a_turn(settings):
    orchestrator, presentation, handler, output = await _connected(settings, {"/api/chat": _echo})
    engine = FakeRecognitionEngine()
    orchestrator.attach_engines(capture=engine)

    assert orchestrator.capture.start() is True
    engine.listener.on_result(TranscriptEvent("こんに"))
    engine.listener.on_result(TranscriptEvent("こんにちは", final=True))
    engine.listener.on_end()
    await _drain(orchestrator)

    assert presentation.events[:3] == [
        ("recording", True),
        ("preview", "こんに"),
        ("recording", False),
    ]
    assert presentation.messages == [("user", "こんにちは"), ("assistant", "echo:こんにちは")]
    assert output.audible == "echo:こんにちは"
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_capture_without_final_result_adds_nothing(settings):
    orchestrator, presentation, handler, _ = await _connected(settings, {"/api/chat": _echo})
    engine = FakeRecognitionEngine()
    orchestrator.attach_engines(capture=engine)

    orchestrator.capture.start()
    orchestrator.capture.stop()
    engine.listener.on_end()
    await _drain(orchestrator)

    assert presentation.messages == []
    assert handler.calls == []
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_concurrent_turns_keep_submission_order(settings):
    async def slow_echo(request):
        await asyncio.sleep(0.01)
        return _echo(request)

    orchestrator, presentation, _, output = await _connected(settings, {"/api/chat": slow_echo})

    await asyncio.gather(orchestrator.submit_text("one"), orchestrator.submit_text("two"))

    assert presentation.messages == [
        ("user", "one"),
        ("assistant", "echo:one"),
        ("user", "two"),
        ("assistant", "echo:two"),
    ]
    assert presentation.max_typing == 1
    assert output.audible == "echo:two"
    await orchestrator.disconnect()


@pytest.mark.asyncio
async def test_disconnect_locks_input_again(settings):
    orchestrator, presentation, handler, output = await _connected(settings, {"/api/chat": _echo})

    await orchestrator.disconnect()

    assert presentation.events == [("connection", "disconnected")]
    assert await orchestrator.submit_text("ping") is None
    assert handler.calls == []
