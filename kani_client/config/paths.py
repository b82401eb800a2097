"""Filesystem helpers for the Kani client."""

from __future__ import annotations

from pathlib import Path


def client_root() -> Path:
    """Return the root folder of the client package."""
    return Path(__file__).resolve().parents[1]


def settings_path() -> Path:
    """Optional JSON file overriding the default settings."""
    return client_root() / "config" / "kani_settings.json"


def models_dir() -> Path:
    """Directory holding the recognition and synthesis models."""
    return client_root() / "resources" / "models"
