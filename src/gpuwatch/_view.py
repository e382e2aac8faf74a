"""Presentation mode selection."""

from __future__ import annotations

import enum


class ViewMode(enum.Enum):
    """Presentation state of the engine."""

    LOADING = "loading"  # no cycle has resolved yet
    EXPANDED = "expanded"  # exactly one device: full detail, no device filter
    GRID = "grid"  # several devices: compact cards with a device filter
    EMPTY = "empty"  # the provider reported zero devices
    ERROR = "error"  # the latest acquisition failed

    @property
    def shows_devices(self) -> bool:
        return self in (ViewMode.EXPANDED, ViewMode.GRID)

    @property
    def has_device_filter(self) -> bool:
        return self is ViewMode.GRID


def select_view(device_count: int) -> ViewMode:
    """Derive the mode from the device count of a successful cycle.

    Recomputed every cycle; a one-cycle change in count flips the mode.
    """
    if device_count < 0:
        raise ValueError(f"device_count must be non-negative, got {device_count}")
    if device_count == 0:
        return ViewMode.EMPTY
    if device_count == 1:
        return ViewMode.EXPANDED
    return ViewMode.GRID
