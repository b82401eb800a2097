"""Speech output engine built on Piper voices and sounddevice playback."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from ..services.schemas import SpokenUtterance, VoiceInfo
from .tts import PiperConfig, PiperTTS, PiperVoiceFiles, discover_voices

if TYPE_CHECKING:
    from .playback import SpeechPlayback

LOGGER = logging.getLogger(__name__)

VoiceLoader = Callable[[PiperVoiceFiles], PiperTTS]


class PiperOutputEngine:
    """Synthesize one utterance at a time on a worker thread.

    Every ``cancel`` or ``enqueue`` bumps a generation counter; a worker
    whose generation is stale stops feeding audio to the playback buffer.
    """

    def __init__(
        self,
        voices_root: Path,
        playback: "SpeechPlayback",
        *,
        loader: VoiceLoader = PiperTTS,
    ) -> None:
        self.playback = playback
        self._files = {files.name: files for files in discover_voices(voices_root)}
        self._loader = loader
        self._loaded: dict[str, PiperTTS] = {}
        self._lock = threading.Lock()
        self._generation = 0
        if not self._files:
            LOGGER.warning("No Piper voice installed under %s", voices_root)

    def voices(self) -> list[VoiceInfo]:
        names = list(self._files)
        return [
            VoiceInfo(name=name, language=self._files[name].language, default=index == 0)
            for index, name in enumerate(names)
        ]

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
        self.playback.stop()

    def enqueue(self, utterance: SpokenUtterance) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
        files = self._resolve(utterance.voice)
        if files is None:
            return
        worker = threading.Thread(
            target=self._speak,
            args=(files, utterance, generation),
            name="kani-tts",
            daemon=True,
        )
        worker.start()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _resolve(self, name: str | None) -> PiperVoiceFiles | None:
        if name and name in self._files:
            return self._files[name]
        # Engine default: first installed voice.
        return next(iter(self._files.values()), None)

    def _speak(self, files: PiperVoiceFiles, utterance: SpokenUtterance, generation: int) -> None:
        try:
            tts = self._load(files)
            # Piper has no pitch control; rate maps onto phoneme length.
            config = PiperConfig(length_scale=1.0 / max(0.1, utterance.rate))
            for pcm, rate, channels in tts.synthesize_stream(utterance.text, config):
                with self._lock:
                    if generation != self._generation:
                        return
                    self.playback.play(pcm, sample_rate=rate, channels=channels)
        except Exception as exc:
            LOGGER.warning("Speech synthesis failed with voice %s: %r", files.name, exc)

    def _load(self, files: PiperVoiceFiles) -> PiperTTS:
        with self._lock:
            tts = self._loaded.get(files.name)
        if tts is None:
            tts = self._loader(files)
            with self._lock:
                self._loaded[files.name] = tts
        return tts
