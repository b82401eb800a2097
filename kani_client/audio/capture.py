"""Microphone capture for push-to-talk dictation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

import sounddevice as sd

LOGGER = logging.getLogger(__name__)

FrameConsumer = Callable[[bytes], None]


@dataclass(slots=True)
class CaptureConfig:
    """16-bit PCM input format; frames must suit the VAD (10, 20 or 30 ms)."""

    sample_rate: int = 16_000
    channels: int = 1
    frame_duration_ms: int = 30
    device_name: str | None = None

    @property
    def frame_size(self) -> int:
        return self.sample_rate * self.frame_duration_ms // 1000


class MicrophoneCapture:
    """Holds the input stream open only while a capture is in progress.

    Frames are handed to the bound consumer on the PortAudio callback
    thread, one ``frame_size`` block at a time.
    """

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self.config = config or CaptureConfig()
        self._consumer: FrameConsumer | None = None
        self._stream: sd.RawInputStream | None = None
        self._guard = threading.Lock()

    @property
    def running(self) -> bool:
        return self._stream is not None

    def bind(self, consumer: FrameConsumer) -> None:
        self._consumer = consumer

    def start(self) -> None:
        if self._consumer is None:
            raise RuntimeError("Microphone started without a frame consumer.")
        with self._guard:
            if self._stream is not None:
                return
            stream = sd.RawInputStream(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype="int16",
                blocksize=self.config.frame_size,
                device=self.config.device_name,
                callback=self._on_block,
            )
            stream.start()
            self._stream = stream
        LOGGER.debug("Microphone open (%s)", self.config.device_name or "default device")

    def stop(self) -> None:
        with self._guard:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        LOGGER.debug("Microphone closed")

    def _on_block(self, indata, frames: int, time, status) -> None:  # noqa: ANN001
        if status:  # pragma: no cover
            LOGGER.warning("Microphone status: %s", status)
        consumer = self._consumer
        if consumer is not None:
            consumer(bytes(indata))
