"""Build the local speech engines, or report them unavailable."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..config.paths import models_dir
from ..config.settings import AppSettings

LOGGER = logging.getLogger(__name__)


def build_recognition_engine(settings: AppSettings, loop: asyncio.AbstractEventLoop):
    """Return a WhisperRecognitionEngine, or None when audio input or the model is missing."""
    audio = settings.audio
    try:
        from .capture import CaptureConfig, MicrophoneCapture
        from .recognition import EndpointConfig, WhisperRecognitionEngine
        from .transcriber import FasterWhisperEngine, WhisperConfig
        from .vad import VADConfig, VoiceActivityDetector

        transcriber = FasterWhisperEngine(
            WhisperConfig(
                model_path=_asr_model_path(audio.asr_model),
                language=settings.speech.language.split("-")[0],
                device=audio.asr_device,
                compute_type=audio.asr_compute_type,
            )
        )
        capture = MicrophoneCapture(CaptureConfig(device_name=audio.input_device))
        vad = VoiceActivityDetector(VADConfig(aggressiveness=audio.vad_aggressiveness))
    except (ImportError, OSError, RuntimeError) as exc:
        LOGGER.warning("Speech recognition unavailable: %r", exc)
        return None
    return WhisperRecognitionEngine(
        loop,
        capture,
        transcriber,
        vad,
        language=settings.speech.language,
        config=EndpointConfig(
            end_of_speech_ms=audio.end_of_speech_ms,
            interim_interval_ms=audio.interim_interval_ms,
        ),
    )


def build_output_engine(settings: AppSettings):
    """Return a PiperOutputEngine, or None when audio output is missing."""
    try:
        from .playback import PlaybackConfig, SpeechPlayback
        from .synthesis import PiperOutputEngine
    except (ImportError, OSError) as exc:
        LOGGER.warning("Speech output unavailable: %r", exc)
        return None
    playback = SpeechPlayback(PlaybackConfig(device_name=settings.audio.output_device))
    return PiperOutputEngine(models_dir() / "tts", playback)


def _asr_model_path(name: str) -> Path:
    return models_dir() / "asr" / name
