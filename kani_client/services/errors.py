"""Error taxonomy of the Kani client."""

from __future__ import annotations


class KaniError(RuntimeError):
    """Base class for errors surfaced by the client core."""


class ConnectivityError(KaniError):
    """The reachability probe failed or returned an unexpected status."""


class ProtocolError(KaniError):
    """The primary endpoint answered with an error status other than 404."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExchangeTimeout(KaniError):
    """The primary endpoint did not answer before the deadline."""


class TransportFailure(KaniError):
    """Network-level failure or malformed body; absorbed by the fallback path."""


class CaptureEngineError(KaniError):
    """Recognition engine failure; only resets the capture state."""
