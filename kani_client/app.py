"""Entry point for the PySide6 Kani client."""

from __future__ import annotations

import logging

from PySide6.QtWidgets import QApplication

from .config.paths import client_root
from .ui.main_window import KaniMainWindow
from .utils.logger import setup_logging


def run() -> None:
    """Start the assistant UI."""
    setup_logging(logging.INFO, client_root() / "logs" / "kani_client.jsonl")
    app = QApplication.instance() or QApplication([])
    window = KaniMainWindow()
    window.show()
    app.exec()
