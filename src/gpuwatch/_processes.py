"""Per-device view of active workloads for the latest cycle."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from gpuwatch._filter import filter_processes
from gpuwatch._types import DeviceSnapshot, ProcessInfo, ProcessType

# Display grouping order for the detail view.
GROUP_ORDER: tuple[ProcessType, ...] = (
    ProcessType.COMPUTE,
    ProcessType.GRAPHICS,
    ProcessType.MIXED,
    ProcessType.UNKNOWN,
)


@dataclass(frozen=True)
class ProcessEntry:
    """A process paired with the device it runs on."""

    gpu_index: int
    gpu_uuid: str
    process: ProcessInfo

    def to_dict(self) -> dict[str, object]:
        return {
            "gpu_index": self.gpu_index,
            "pid": self.process.pid,
            "name": self.process.name,
            "gpu_memory_mib": self.process.gpu_memory_mib,
            "type": self.process.process_type.value,
        }


class ProcessDirectory:
    """Read-only projection of DeviceSnapshot.processes, rebuilt every cycle.

    Holds no continuity state: a pid seen in two cycles is just two entries in
    two directories.
    """

    def __init__(self, snapshots: Sequence[DeviceSnapshot] = ()) -> None:
        self._order: tuple[str, ...] = tuple(s.uuid for s in snapshots)
        self._index: dict[str, int] = {s.uuid: s.device.index for s in snapshots}
        self._processes: dict[str, tuple[ProcessInfo, ...]] = {
            s.uuid: tuple(s.processes) for s in snapshots
        }

    @property
    def uuids(self) -> tuple[str, ...]:
        return self._order

    def processes(self, uuid: str) -> tuple[ProcessInfo, ...]:
        """Processes on one device in provider order; empty if unknown."""
        return self._processes.get(uuid, ())

    def search(self, uuid: str, term: str) -> list[ProcessInfo]:
        return filter_processes(self.processes(uuid), term)

    def grouped(self, uuid: str, term: str = "") -> dict[ProcessType, tuple[ProcessInfo, ...]]:
        """Processes matching *term*, grouped by classification in GROUP_ORDER.

        Empty groups are left out.
        """
        procs = self.search(uuid, term)
        groups: dict[ProcessType, tuple[ProcessInfo, ...]] = {}
        for kind in GROUP_ORDER:
            members = tuple(p for p in procs if p.process_type is kind)
            if members:
                groups[kind] = members
        return groups

    def entries(self, term: str = "") -> list[ProcessEntry]:
        """Every process across devices, device order first, filtered by *term*."""
        return [
            ProcessEntry(self._index[uuid], uuid, proc)
            for uuid in self._order
            for proc in self.search(uuid, term)
        ]

    def __contains__(self, uuid: object) -> bool:
        return uuid in self._processes

    def __len__(self) -> int:
        return sum(len(procs) for procs in self._processes.values())
