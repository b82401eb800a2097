from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from kani_client.config.settings import AppSettings
from kani_client.services.api import AssistantAPI
from kani_client.services.schemas import Endpoint, VoiceInfo


class FakePresentation:
    """Records every presentation call in order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.typing = 0
        self.max_typing = 0

    def append_message(self, role, text) -> None:
        self.events.append(("message", role.value, text))

    def show_typing_placeholder(self) -> None:
        self.typing += 1
        self.max_typing = max(self.max_typing, self.typing)
        self.events.append(("typing", True))

    def remove_typing_placeholder(self) -> None:
        self.typing -= 1
        self.events.append(("typing", False))

    def set_connection_state(self, state) -> None:
        self.events.append(("connection", state.value))

    def set_recording(self, active: bool) -> None:
        self.events.append(("recording", active))

    def show_preview(self, text: str) -> None:
        self.events.append(("preview", text))

    @property
    def messages(self) -> list[tuple[str, str]]:
        return [(event[1], event[2]) for event in self.events if event[0] == "message"]


class FakeRecognitionEngine:
    """Recognition engine driven by the test through its bound listener."""

    language = "ja-JP"

    def __init__(self, *, fail_start: bool = False) -> None:
        self.listener = None
        self.fail_start = fail_start
        self.started = 0
        self.stopped = 0

    def bind(self, listener) -> None:
        self.listener = listener

    def start(self) -> None:
        self.started += 1
        if self.fail_start:
            raise RuntimeError("microphone busy")

    def stop(self) -> None:
        self.stopped += 1


class FakeOutputEngine:
    """Speech engine where only the last enqueued, uncancelled text is audible."""

    def __init__(self, voices: list[VoiceInfo] | None = None) -> None:
        self._voices = voices or []
        self.audible: str | None = None
        self.spoken: list = []
        self.cancels = 0

    def voices(self) -> list[VoiceInfo]:
        return list(self._voices)

    def cancel(self) -> None:
        self.cancels += 1
        self.audible = None

    def enqueue(self, utterance) -> None:
        self.spoken.append(utterance)
        self.audible = utterance.text


class RecordingHandler:
    """httpx MockTransport handler routing by path and counting calls."""

    def __init__(self, routes: dict[str, Callable[[httpx.Request], httpx.Response]]) -> None:
        self.routes = routes
        self.calls: list[tuple[str, dict | None]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.url.path, body))
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        result = route(request)
        if hasattr(result, "__await__"):
            result = await result
        return result

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


def json_reply(payload, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=payload)


def text_reply(text: str, status: int) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, text=text)


def make_api(settings: AppSettings, handler: RecordingHandler, address: str = "http://assistant.test") -> AssistantAPI:
    return AssistantAPI(settings, Endpoint(address), transport=httpx.MockTransport(handler))


def api_factory(handler: RecordingHandler):
    def build(settings: AppSettings, endpoint: Endpoint) -> AssistantAPI:
        return AssistantAPI(settings, endpoint, transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()
