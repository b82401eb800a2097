"""Narrow interface between the session core and whatever renders it."""

from __future__ import annotations

from typing import Protocol

from ..services.schemas import Role
from ..state.app_state import ConnectionState


class Presentation(Protocol):
    """Transcript surface driven by the session orchestrator."""

    def append_message(self, role: Role, text: str) -> None: ...

    def show_typing_placeholder(self) -> None: ...

    def remove_typing_placeholder(self) -> None: ...

    def set_connection_state(self, state: ConnectionState) -> None: ...

    def set_recording(self, active: bool) -> None: ...

    def show_preview(self, text: str) -> None: ...
