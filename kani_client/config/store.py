"""Loading helpers for Kani client settings."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .paths import settings_path
from .settings import AppSettings, AudioSettings, ProtocolSettings, ServerSettings, SpeechSettings

LOGGER = logging.getLogger(__name__)


def load_settings(path: Path | None = None) -> AppSettings:
    """Load settings from disk (defaults when missing).

    Each section of the JSON document may override any subset of its
    fields. Settings are read-only: nothing is ever written back.
    """
    path = path or settings_path()
    if not path.exists():
        return AppSettings()

    raw_text = path.read_text(encoding="utf-8").lstrip("\ufeff")
    data = json.loads(raw_text)
    LOGGER.info("Loaded settings from %s", path)

    return AppSettings(
        server=ServerSettings(**data.get("server", {})),
        protocol=ProtocolSettings(**data.get("protocol", {})),
        speech=SpeechSettings(**data.get("speech", {})),
        audio=AudioSettings(**data.get("audio", {})),
    )
