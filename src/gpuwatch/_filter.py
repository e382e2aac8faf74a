"""Search predicates over device and process collections.

Matching is a case-insensitive plain substring test; the term is never
interpreted as a pattern. An empty term matches everything. Filters return a
new list in source order and never modify their input.
"""

from __future__ import annotations

from collections.abc import Iterable

from gpuwatch._types import DeviceSnapshot, ProcessInfo


def _contains(haystack: str, needle: str) -> bool:
    return needle in haystack.casefold()


def matches_device(snapshot: DeviceSnapshot, term: str) -> bool:
    """Match on device name, decimal index, or UUID."""
    if not term:
        return True
    needle = term.casefold()
    device = snapshot.device
    return (
        _contains(device.name, needle)
        or _contains(str(device.index), needle)
        or _contains(device.uuid, needle)
    )


def matches_process(process: ProcessInfo, term: str) -> bool:
    """Match on process name or decimal pid."""
    if not term:
        return True
    needle = term.casefold()
    return _contains(process.name, needle) or _contains(str(process.pid), needle)


def filter_devices(snapshots: Iterable[DeviceSnapshot], term: str) -> list[DeviceSnapshot]:
    return [s for s in snapshots if matches_device(s, term)]


def filter_processes(processes: Iterable[ProcessInfo], term: str) -> list[ProcessInfo]:
    return [p for p in processes if matches_process(p, term)]
