"""Data schemas exchanged with the assistant backend and the transcript."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Author of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"


class UtteranceSource(str, Enum):
    """Origin of an utterance."""

    USER = "user"
    VOICE = "voice"


@dataclass(slots=True, frozen=True)
class Endpoint:
    """Base address of the assistant service, without a trailing slash."""

    base_url: str

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise ValueError("Endpoint address must not be empty.")
        object.__setattr__(self, "base_url", self.base_url.strip().rstrip("/"))


@dataclass(slots=True, frozen=True)
class Utterance:
    """One unit of user input text."""

    text: str
    source: UtteranceSource = UtteranceSource.USER


@dataclass(slots=True)
class TranscriptEvent:
    """Recognition result produced while capturing speech."""

    text: str
    final: bool = False


@dataclass(slots=True)
class ChatRequest:
    """Payload sent to the primary chat endpoint."""

    message: str
    stream: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, "stream": self.stream}


@dataclass(slots=True)
class ConverseRequest:
    """Payload sent to the fallback converse endpoint."""

    text: str

    def to_payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True)
class SpokenUtterance:
    """Utterance handed to the speech output engine."""

    text: str
    language: str
    voice: str | None = None
    rate: float = 1.0
    pitch: float = 1.0


@dataclass(slots=True, frozen=True)
class VoiceInfo:
    """Voice offered by a speech output engine."""

    name: str
    language: str
    default: bool = False


@dataclass(slots=True)
class TurnResult:
    """Outcome of one completed turn."""

    utterance: Utterance
    text: str
    ok: bool
    metadata: dict[str, Any] = field(default_factory=dict)
