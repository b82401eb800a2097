"""Local configuration models for the Kani client."""

from __future__ import annotations

from dataclasses import dataclass, field


DEFAULT_FALLBACK_REPLY = (
    "Connected to the assistant, but no reply could be retrieved. "
    "Please check that the assistant service is running."
)


@dataclass(slots=True)
class ServerSettings:
    """Backend paths and deadlines.

    The base address is never configured here: it is entered by the user
    when connecting.
    """

    health_path: str = "/api/health"
    chat_path: str = "/api/chat"
    converse_path: str = "/api/converse"
    probe_timeout: float = 5.0
    exchange_timeout: float = 30.0
    verify_ssl: bool = True


@dataclass(slots=True)
class ProtocolSettings:
    """Reply normalization rules for the chat exchange."""

    primary_reply_keys: list[str] = field(default_factory=lambda: ["response", "message", "content"])
    fallback_reply_keys: list[str] = field(default_factory=lambda: ["response", "text"])
    fallback_reply: str = DEFAULT_FALLBACK_REPLY


@dataclass(slots=True)
class SpeechSettings:
    """Spoken language and voice parameters."""

    language: str = "ja-JP"
    rate: float = 1.0
    pitch: float = 1.0
    voice: str | None = None


@dataclass(slots=True)
class AudioSettings:
    """Microphone, recognition and playback settings."""

    input_device: str | None = None
    output_device: str | None = None
    asr_model: str = "faster-whisper-small"
    asr_device: str = "cpu"
    asr_compute_type: str = "int8"
    vad_aggressiveness: int = 2
    end_of_speech_ms: int = 800
    interim_interval_ms: int = 1200


@dataclass(slots=True)
class AppSettings:
    """Full set of settings for the client."""

    server: ServerSettings = field(default_factory=ServerSettings)
    protocol: ProtocolSettings = field(default_factory=ProtocolSettings)
    speech: SpeechSettings = field(default_factory=SpeechSettings)
    audio: AudioSettings = field(default_factory=AudioSettings)
