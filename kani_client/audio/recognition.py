"""Local speech recognizer: microphone + VAD endpointing + faster-whisper."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Protocol

from ..services.errors import CaptureEngineError
from ..services.schemas import TranscriptEvent

if TYPE_CHECKING:
    from ..runtime.capture import RecognitionListener
    from .capture import MicrophoneCapture

LOGGER = logging.getLogger(__name__)


class SpeechDetector(Protocol):
    def is_speech(self, frame: bytes, sample_rate: int) -> bool: ...


class Transcriber(Protocol):
    def transcribe(self, pcm: bytes) -> str: ...


@dataclass(slots=True)
class EndpointConfig:
    """Timing rules for interim previews and automatic finalization."""

    end_of_speech_ms: int = 800
    min_speech_ms: int = 150
    interim_interval_ms: int = 1200


class EndOfSpeechDetector:
    """Decide when a speaker has finished, from per-frame speech flags.

    Speech must last ``min_speech_ms`` before trailing silence of
    ``end_of_speech_ms`` counts as the end of the utterance.
    """

    def __init__(self, config: EndpointConfig) -> None:
        self.config = config
        self.reset()

    def reset(self) -> None:
        self.speech_ms = 0
        self.silence_ms = 0

    @property
    def heard_speech(self) -> bool:
        return self.speech_ms >= self.config.min_speech_ms

    def update(self, speech: bool, duration_ms: int) -> bool:
        """Feed one frame; return True once the utterance is over."""
        if speech:
            self.speech_ms += duration_ms
            self.silence_ms = 0
            return False
        if not self.heard_speech:
            return False
        self.silence_ms += duration_ms
        return self.silence_ms >= self.config.end_of_speech_ms


class WhisperRecognitionEngine:
    """Single-shot recognizer reporting interim and final transcripts.

    A capture ends on its own once trailing silence follows speech, or when
    ``stop`` is called; either way the buffered audio is transcribed once and
    reported as the final result before ``on_end``.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        capture: "MicrophoneCapture",
        transcriber: Transcriber,
        vad: SpeechDetector,
        *,
        language: str = "ja-JP",
        config: EndpointConfig | None = None,
    ) -> None:
        self.loop = loop
        self.capture = capture
        self.transcriber = transcriber
        self.vad = vad
        self.language = language
        self.config = config or EndpointConfig()
        self._endpoint = EndOfSpeechDetector(self.config)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kani-asr")
        self._listener: Optional["RecognitionListener"] = None
        self._lock = threading.Lock()
        self._buffer = bytearray()
        self._active = False
        self._generation = 0
        self._since_interim_ms = 0
        self._interim_pending = False
        self._tasks: set[asyncio.Task[Any]] = set()
        capture.bind(self._on_frame)

    def bind(self, listener: "RecognitionListener") -> None:
        self._listener = listener

    def start(self) -> None:
        """Open the microphone; errors propagate to the caller."""
        with self._lock:
            if self._active:
                return
            self._generation += 1
            self._buffer.clear()
            self._endpoint.reset()
            self._since_interim_ms = 0
            self._active = True
        try:
            self.capture.start()
        except Exception:
            with self._lock:
                self._active = False
            raise

    def stop(self) -> None:
        self._finish()

    def shutdown(self) -> None:
        with self._lock:
            self._active = False
        self.capture.stop()
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------ #
    # Audio thread
    # ------------------------------------------------------------------ #
    def _on_frame(self, frame: bytes) -> None:
        rate = self.capture.config.sample_rate
        frame_ms = self.capture.config.frame_duration_ms
        speech = self.vad.is_speech(frame, rate)
        snapshot = b""
        with self._lock:
            if not self._active:
                return
            self._buffer.extend(frame)
            ended = self._endpoint.update(speech, frame_ms)
            self._since_interim_ms += frame_ms
            want_interim = (
                not ended
                and not self._interim_pending
                and self._endpoint.heard_speech
                and self._since_interim_ms >= self.config.interim_interval_ms
            )
            if want_interim:
                self._interim_pending = True
                self._since_interim_ms = 0
                snapshot = bytes(self._buffer)
            generation = self._generation
        try:
            if ended:
                self.loop.call_soon_threadsafe(self._finish)
            elif want_interim:
                self.loop.call_soon_threadsafe(self._spawn, self._interim(snapshot, generation))
        except RuntimeError:  # pragma: no cover - loop closed during shutdown
            with self._lock:
                self._active = False

    # ------------------------------------------------------------------ #
    # Event loop
    # ------------------------------------------------------------------ #
    def _finish(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            audio = bytes(self._buffer) if self._endpoint.heard_speech else b""
            self._buffer.clear()
        try:
            self.capture.stop()
        except Exception as exc:  # pragma: no cover - device vanished
            LOGGER.warning("Microphone stop failed: %r", exc)
        self._spawn(self._finalize(audio))

    async def _finalize(self, audio: bytes) -> None:
        listener = self._listener
        try:
            text = ""
            if audio:
                text = await self.loop.run_in_executor(self._executor, self.transcriber.transcribe, audio)
        except Exception as exc:
            if listener is not None:
                listener.on_error(CaptureEngineError(str(exc) or exc.__class__.__name__))
        else:
            if text.strip() and listener is not None:
                listener.on_result(TranscriptEvent(text=text.strip(), final=True))
        finally:
            if listener is not None:
                listener.on_end()

    async def _interim(self, audio: bytes, generation: int) -> None:
        try:
            text = await self.loop.run_in_executor(self._executor, self.transcriber.transcribe, audio)
        except Exception as exc:
            LOGGER.debug("Interim transcription failed: %r", exc)
            text = ""
        finally:
            with self._lock:
                self._interim_pending = False
        with self._lock:
            current = self._active and generation == self._generation
        if current and text.strip() and self._listener is not None:
            self._listener.on_result(TranscriptEvent(text=text.strip(), final=False))

    def _spawn(self, coroutine: Any) -> None:
        task = self.loop.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
