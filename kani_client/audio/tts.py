"""Text-to-speech helpers using Piper."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from piper import PiperVoice, SynthesisConfig

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PiperVoiceFiles:
    """Model and config files of one installed Piper voice."""

    name: str
    language: str
    model_path: Path
    config_path: Path


@dataclass(slots=True)
class PiperConfig:
    """Piper synthesis parameters."""

    speaker_id: int | None = None
    length_scale: float = 1.0
    noise_scale: float | None = None


def discover_voices(root: Path) -> list[PiperVoiceFiles]:
    """Find installed voices under ``root``, tagged with their language code."""
    voices: list[PiperVoiceFiles] = []
    if not root.exists():
        return voices
    for config_path in sorted(root.rglob("*.onnx.json")):
        model_path = config_path.with_suffix("")
        if not model_path.exists():
            continue
        try:
            meta = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Skipping unreadable voice config %s: %r", config_path, exc)
            continue
        language = (meta.get("language") or {}).get("code") or (meta.get("espeak") or {}).get("voice") or ""
        voices.append(
            PiperVoiceFiles(
                name=model_path.stem,
                language=str(language),
                model_path=model_path,
                config_path=config_path,
            )
        )
    return voices


class PiperTTS:
    """Thin wrapper around PiperVoice."""

    def __init__(self, files: PiperVoiceFiles) -> None:
        self.files = files
        self._voice = PiperVoice.load(str(files.model_path), str(files.config_path))

    def synthesize_stream(self, text: str, config: PiperConfig | None = None) -> Iterator[tuple[bytes, int, int]]:
        """Yield audio chunks (bytes, sample_rate, channels)."""
        text = sanitize_text(text)
        if not text:
            return
        config = config or PiperConfig()
        kwargs = {}
        if config.speaker_id is not None:
            kwargs["speaker_id"] = config.speaker_id
        if config.length_scale != 1.0:
            kwargs["length_scale"] = config.length_scale
        if config.noise_scale is not None:
            kwargs["noise_scale"] = config.noise_scale
        syn_config = SynthesisConfig(**kwargs) if kwargs else None
        for chunk in self._voice.synthesize(text, syn_config=syn_config):
            yield chunk.audio_int16_bytes, chunk.sample_rate, chunk.sample_channels or 1


def sanitize_text(text: str) -> str:
    """Drop markdown markup that would otherwise be read aloud."""
    cleaned = re.sub(r"[*_`#<>]", " ", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()
