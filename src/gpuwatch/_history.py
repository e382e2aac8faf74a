"""Per-device rolling history of utilization and memory samples."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from gpuwatch._buffer import RingBuffer
from gpuwatch._types import DeviceSnapshot

logger = logging.getLogger("gpuwatch.history")

DEFAULT_CAPACITY = 60


class History(NamedTuple):
    """Read-only copy of one device's windows, oldest sample first."""

    utilization: tuple[float, ...]
    memory: tuple[float, ...]


_EMPTY = History((), ())


class _Window:
    __slots__ = ("memory", "utilization")

    def __init__(self, capacity: int) -> None:
        self.utilization = RingBuffer(capacity)
        self.memory = RingBuffer(capacity)


class HistoryStore:
    """Owns every history window, keyed by device UUID.

    Written by a single poller; read from any thread. Reads return tuples, so
    a reader never observes a window mid-append.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, snapshots: Sequence[DeviceSnapshot]) -> None:
        """Append one utilization and one memory-percent sample per snapshot.

        All samples are derived before any window is touched, so a snapshot
        that cannot be converted leaves every window unchanged.

        Raises:
            TypeError, ValueError: if a snapshot carries a non-numeric metric.
        """
        samples = [
            (snap, float(snap.metrics.gpu_utilization), float(snap.memory.usage_percent))
            for snap in snapshots
        ]
        with self._lock:
            for snap, util, mem in samples:
                window = self._windows.get(snap.uuid)
                if window is None:
                    logger.debug("Tracking new device %s (%s)", snap.uuid, snap.device.name)
                    window = _Window(self._capacity)
                    self._windows[snap.uuid] = window
                if not snap.memory.is_consistent:
                    logger.debug(
                        "Inconsistent memory report for %s: used=%s free=%s total=%s",
                        snap.uuid, snap.memory.used, snap.memory.free, snap.memory.total,
                    )
                window.utilization.append(util)
                window.memory.append(mem)

    def prune(self, keep: Iterable[str]) -> list[str]:
        """Drop windows for every UUID not in *keep*. Returns the dropped UUIDs."""
        keep_set = set(keep)
        with self._lock:
            stale = [uuid for uuid in self._windows if uuid not in keep_set]
            for uuid in stale:
                del self._windows[uuid]
        for uuid in stale:
            logger.debug("Forgot device %s", uuid)
        return stale

    def forget(self, uuid: str) -> bool:
        """Drop the window for one device. Returns False if it was not tracked."""
        with self._lock:
            return self._windows.pop(uuid, None) is not None

    def read(self, uuid: str) -> History:
        """Return copies of a device's windows; empty for an unknown UUID."""
        with self._lock:
            window = self._windows.get(uuid)
            if window is None:
                return _EMPTY
            return History(window.utilization.snapshot(), window.memory.snapshot())

    def uuids(self) -> list[str]:
        with self._lock:
            return list(self._windows)

    def __contains__(self, uuid: object) -> bool:
        with self._lock:
            return uuid in self._windows

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
