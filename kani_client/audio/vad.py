"""Voice activity detection utilities."""

from __future__ import annotations

from dataclasses import dataclass

import webrtcvad


_VALID_SAMPLE_RATES = (8000, 16_000, 32_000, 48_000)
_VALID_FRAME_DURATIONS_MS = (10, 20, 30)
_BYTES_PER_SAMPLE = 2  # pcm_s16le mono


@dataclass(slots=True)
class VADConfig:
    """WebRTC VAD configuration."""

    aggressiveness: int = 2  # 0 (sensitive) to 3 (strict)


class VoiceActivityDetector:
    """Wrapper around the WebRTC VAD implementation."""

    def __init__(self, config: VADConfig | None = None) -> None:
        self.config = config or VADConfig()
        self.config.aggressiveness = max(0, min(3, self.config.aggressiveness))
        self._vad = webrtcvad.Vad(self.config.aggressiveness)

    def is_speech(self, frame: bytes, sample_rate: int) -> bool:
        """Return True when the frame contains speech."""
        if sample_rate not in _VALID_SAMPLE_RATES:
            return True
        return self._vad.is_speech(fit_frame(frame, sample_rate), sample_rate)


def fit_frame(frame: bytes, sample_rate: int) -> bytes:
    """Pad or trim a frame to the closest duration WebRTC VAD accepts."""
    frame_samples = len(frame) // _BYTES_PER_SAMPLE
    if frame_samples == 0:
        return frame
    target_samples = min(
        (sample_rate * duration // 1000 for duration in _VALID_FRAME_DURATIONS_MS),
        key=lambda expected: abs(expected - frame_samples),
    )
    target_bytes = target_samples * _BYTES_PER_SAMPLE
    if len(frame) >= target_bytes:
        return frame[:target_bytes]
    return frame + bytes(target_bytes - len(frame))
