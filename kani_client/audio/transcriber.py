"""ASR utilities powered by faster-whisper."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from faster_whisper import WhisperModel


@dataclass(slots=True)
class WhisperConfig:
    """Configuration for the faster-whisper engine."""

    model_path: Path
    language: str = "ja"
    device: str = "cpu"
    compute_type: str = "int8"


def pcm16_to_float(pcm: bytes) -> np.ndarray:
    """Convert 16-bit little-endian PCM to float32 samples in [-1, 1]."""
    return np.frombuffer(pcm, dtype="<i2").astype(np.float32) / 32768.0


class FasterWhisperEngine:
    """Thin wrapper around WhisperModel."""

    def __init__(self, config: WhisperConfig) -> None:
        if not config.model_path.exists():
            raise FileNotFoundError(f"Whisper model not found: {config.model_path}")
        self.config = config
        self.model = WhisperModel(
            str(config.model_path),
            device=config.device,
            compute_type=config.compute_type,
        )

    def transcribe(self, pcm: bytes) -> str:
        """Transcribe 16 kHz mono PCM into text."""
        if not pcm:
            return ""
        segments, _ = self.model.transcribe(
            pcm16_to_float(pcm),
            language=self.config.language,
            beam_size=1,
            vad_filter=False,
        )
        return "".join(segment.text for segment in segments).strip()
