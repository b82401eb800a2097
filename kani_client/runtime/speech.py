"""Spoken playback of assistant replies."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ..config.settings import SpeechSettings
from ..services.schemas import SpokenUtterance, VoiceInfo

LOGGER = logging.getLogger(__name__)


class SpeechOutputEngine(Protocol):
    """Host text-to-speech channel."""

    def voices(self) -> Sequence[VoiceInfo]: ...

    def cancel(self) -> None: ...

    def enqueue(self, utterance: SpokenUtterance) -> None: ...


def _primary_subtag(language: str) -> str:
    return language.replace("_", "-").split("-", 1)[0].lower()


class SpeechOutputController:
    """Speak one reply at a time; the most recent reply always wins."""

    def __init__(self, settings: SpeechSettings, engine: SpeechOutputEngine | None = None) -> None:
        self.settings = settings
        self.engine = engine

    @property
    def available(self) -> bool:
        return self.engine is not None

    def speak(self, text: str) -> SpokenUtterance | None:
        """Cancel whatever is playing, then enqueue ``text``.

        Never raises: speech output is best effort and must not fail a turn.
        """
        if self.engine is None:
            return None
        text = text.strip()
        try:
            self.engine.cancel()
            if not text:
                return None
            utterance = SpokenUtterance(
                text=text,
                language=self.settings.language,
                voice=self.select_voice(),
                rate=self.settings.rate,
                pitch=self.settings.pitch,
            )
            self.engine.enqueue(utterance)
        except Exception as exc:
            LOGGER.warning("Speech output failed: %r", exc)
            return None
        return utterance

    def cancel(self) -> None:
        """Silence the current utterance, if any."""
        if self.engine is None:
            return
        try:
            self.engine.cancel()
        except Exception as exc:
            LOGGER.warning("Speech cancel failed: %r", exc)

    def select_voice(self) -> str | None:
        """Pick a voice for the configured language, or None for the engine default."""
        if self.engine is None:
            return None
        voices = list(self.engine.voices())
        if self.settings.voice and any(voice.name == self.settings.voice for voice in voices):
            return self.settings.voice
        wanted = _primary_subtag(self.settings.language)
        for voice in voices:
            if _primary_subtag(voice.language) == wanted:
                return voice.name
        return None
