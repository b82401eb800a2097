"""Correlation id shared by every log line of one turn."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_current_turn: ContextVar[str | None] = ContextVar("kani_turn", default=None)


def get_turn_id() -> str | None:
    return _current_turn.get()


@contextmanager
def turn_scope(turn_id: str | None = None) -> Iterator[str]:
    """Bind a turn id (a fresh one by default) until the block exits."""
    turn_id = turn_id or uuid.uuid4().hex[:12]
    token = _current_turn.set(turn_id)
    try:
        yield turn_id
    finally:
        _current_turn.reset(token)
