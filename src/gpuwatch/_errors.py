"""Error types raised by gpuwatch."""

from __future__ import annotations


class GpuwatchError(Exception):
    """Base class for gpuwatch errors."""


class ProviderError(GpuwatchError):
    """Telemetry acquisition failed (driver, IPC, permission or parse failure).

    The engine treats every acquisition failure the same way, so this is not
    subclassed further.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
