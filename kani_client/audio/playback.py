"""Audio output for synthesized speech."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import sounddevice as sd

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PlaybackConfig:
    """Output device and the PCM format it is opened with."""

    sample_rate: int = 22_050
    channels: int = 1
    device_name: str | None = None


class SpeechPlayback:
    """Feed queued 16-bit PCM to the output device.

    ``stop`` drops whatever has not been played yet and releases the device;
    the next ``play`` opens it again.
    """

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._pending = bytearray()
        self._lock = threading.Lock()
        self._stream: sd.RawOutputStream | None = None

    def play(self, pcm: bytes, sample_rate: int | None = None, channels: int | None = None) -> None:
        if not pcm:
            return
        wanted = (sample_rate or self.config.sample_rate, channels or self.config.channels)
        if wanted != (self.config.sample_rate, self.config.channels):
            self.stop()
            self.config.sample_rate, self.config.channels = wanted
        stream = self._open()
        with self._lock:
            self._pending.extend(pcm)
        if not stream.active:
            stream.start()

    def stop(self) -> None:
        with self._lock:
            self._pending.clear()
            stream, self._stream = self._stream, None
        # Closed outside the lock: the output callback needs it to return.
        if stream is not None:
            stream.stop()
            stream.close()

    def _open(self) -> sd.RawOutputStream:
        with self._lock:
            if self._stream is None:
                LOGGER.debug("Opening output at %s Hz, %s channel(s)", self.config.sample_rate, self.config.channels)
                self._stream = sd.RawOutputStream(
                    samplerate=self.config.sample_rate,
                    channels=self.config.channels,
                    dtype="int16",
                    device=self.config.device_name,
                    callback=self._on_write,
                )
            return self._stream

    def _on_write(self, outdata, frames: int, time, status) -> None:  # noqa: ANN001
        if status:  # pragma: no cover
            LOGGER.warning("Playback status: %s", status)
        size = len(outdata)
        with self._lock:
            chunk = bytes(self._pending[:size])
            del self._pending[:size]
        outdata[: len(chunk)] = chunk
        if len(chunk) < size:
            outdata[len(chunk) :] = bytes(size - len(chunk))
