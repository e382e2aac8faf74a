"""Core types: the snapshot model produced by one acquisition cycle."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gpuwatch._errors import ProviderError

_MIB = 1024 * 1024
_GIB = 1024 * 1024 * 1024


class ProcessType(enum.Enum):
    """Workload classification of a process running on a device.

    Values are the wire names. Unrecognized values parse to UNKNOWN.
    """

    GRAPHICS = "Graphics"
    COMPUTE = "Compute"
    MIXED = "Mixed"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> ProcessType:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return cls.UNKNOWN

    @property
    def short_label(self) -> str:
        """Compact render hint for narrow tables."""
        return _SHORT_LABELS[self]


_SHORT_LABELS: dict[ProcessType, str] = {
    ProcessType.GRAPHICS: "Gfx",
    ProcessType.COMPUTE: "Comp",
    ProcessType.MIXED: "Mix",
    ProcessType.UNKNOWN: "?",
}


class TemperatureStatus(enum.Enum):
    """Temperature band of a device."""

    COOL = "cool"
    NORMAL = "normal"
    WARM = "warm"
    HOT = "hot"

    @classmethod
    def from_celsius(cls, temperature: float) -> TemperatureStatus:
        if temperature <= 50:
            return cls.COOL
        if temperature <= 70:
            return cls.NORMAL
        if temperature <= 85:
            return cls.WARM
        return cls.HOT

    @property
    def color(self) -> str:
        return _TEMPERATURE_COLORS[self]


_TEMPERATURE_COLORS: dict[TemperatureStatus, str] = {
    TemperatureStatus.COOL: "green",
    TemperatureStatus.NORMAL: "blue",
    TemperatureStatus.WARM: "yellow",
    TemperatureStatus.HOT: "red",
}


@dataclass(frozen=True)
class Device:
    """Static identity of a device. Stable for the session."""

    index: int
    name: str
    uuid: str
    pci_bus_id: str
    driver_version: str
    api_version: str | None
    power_limit: float  # watts
    power_limit_max: float  # watts


@dataclass(frozen=True)
class Metrics:
    """Instantaneous device metrics."""

    gpu_utilization: float
    memory_utilization: float
    encoder_utilization: float
    decoder_utilization: float
    temperature: float
    power_usage: float  # milliwatts
    fan_speed: float | None  # None on passively cooled or virtual devices
    clock_graphics: float
    clock_memory: float
    clock_sm: float

    @property
    def power_watts(self) -> float:
        return self.power_usage / 1000.0

    @property
    def is_idle(self) -> bool:
        return self.gpu_utilization < 5

    @property
    def is_heavy_load(self) -> bool:
        return self.gpu_utilization > 80

    @property
    def temperature_status(self) -> TemperatureStatus:
        return TemperatureStatus.from_celsius(self.temperature)


@dataclass(frozen=True)
class MemoryInfo:
    """Device memory capacity in bytes."""

    total: int
    used: int
    free: int

    @property
    def usage_percent(self) -> float:
        """Used memory as a percentage of total, 0.0 when total is zero."""
        if self.total == 0:
            return 0.0
        return (self.used / self.total) * 100

    @property
    def is_consistent(self) -> bool:
        return self.used + self.free == self.total

    @property
    def total_mib(self) -> int:
        return self.total // _MIB

    @property
    def used_mib(self) -> int:
        return self.used // _MIB

    @property
    def free_mib(self) -> int:
        return self.free // _MIB

    @property
    def total_gib(self) -> float:
        return self.total / _GIB

    @property
    def used_gib(self) -> float:
        return self.used / _GIB


@dataclass(frozen=True)
class ProcessInfo:
    """A workload attributed to one device. pid is host-scoped."""

    pid: int
    name: str
    gpu_memory: int  # bytes
    process_type: ProcessType = ProcessType.UNKNOWN

    @property
    def gpu_memory_mib(self) -> int:
        return self.gpu_memory // _MIB


@dataclass(frozen=True)
class DeviceSnapshot:
    """Immutable bundle of device + metrics + memory + processes for one cycle."""

    device: Device
    metrics: Metrics
    memory: MemoryInfo
    processes: tuple[ProcessInfo, ...] = field(default_factory=tuple)

    @property
    def uuid(self) -> str:
        return self.device.uuid

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the acquisition wire schema."""
        d = self.device
        m = self.metrics
        return {
            "device": {
                "index": d.index,
                "name": d.name,
                "uuid": d.uuid,
                "pci_bus_id": d.pci_bus_id,
                "driver_version": d.driver_version,
                "api_version": d.api_version,
                "power_limit": d.power_limit,
                "power_limit_max": d.power_limit_max,
            },
            "metrics": {
                "gpu_utilization": m.gpu_utilization,
                "memory_utilization": m.memory_utilization,
                "encoder_utilization": m.encoder_utilization,
                "decoder_utilization": m.decoder_utilization,
                "temperature": m.temperature,
                "power_usage": m.power_usage,
                "fan_speed": m.fan_speed,
                "clock_graphics": m.clock_graphics,
                "clock_memory": m.clock_memory,
                "clock_sm": m.clock_sm,
            },
            "memory": {
                "total": self.memory.total,
                "used": self.memory.used,
                "free": self.memory.free,
            },
            "processes": [
                {
                    "pid": p.pid,
                    "name": p.name,
                    "gpu_memory": p.gpu_memory,
                    "process_type": p.process_type.value,
                }
                for p in self.processes
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceSnapshot:
        """Parse the acquisition wire schema.

        Raises:
            ProviderError: if a section or field is missing or has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise ProviderError("malformed snapshot: expected an object")
        dev = _section(data, "device")
        met = _section(data, "metrics")
        mem = _section(data, "memory")
        raw_procs = data.get("processes", [])
        if not isinstance(raw_procs, list):
            raise ProviderError("malformed snapshot: 'processes' must be a list")

        fan = met.get("fan_speed")
        api_version = dev.get("api_version")
        return cls(
            device=Device(
                index=int(_number(dev, "index")),
                name=_string(dev, "name"),
                uuid=_string(dev, "uuid"),
                pci_bus_id=_string(dev, "pci_bus_id"),
                driver_version=_string(dev, "driver_version"),
                api_version=None if api_version is None else str(api_version),
                power_limit=_number(dev, "power_limit"),
                power_limit_max=_number(dev, "power_limit_max"),
            ),
            metrics=Metrics(
                gpu_utilization=_number(met, "gpu_utilization"),
                memory_utilization=_number(met, "memory_utilization"),
                encoder_utilization=_number(met, "encoder_utilization"),
                decoder_utilization=_number(met, "decoder_utilization"),
                temperature=_number(met, "temperature"),
                power_usage=_number(met, "power_usage"),
                fan_speed=None if fan is None else _number(met, "fan_speed"),
                clock_graphics=_number(met, "clock_graphics"),
                clock_memory=_number(met, "clock_memory"),
                clock_sm=_number(met, "clock_sm"),
            ),
            memory=MemoryInfo(
                total=int(_number(mem, "total")),
                used=int(_number(mem, "used")),
                free=int(_number(mem, "free")),
            ),
            processes=tuple(_parse_process(p) for p in raw_procs),
        )


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if not isinstance(value, Mapping):
        raise ProviderError(f"malformed snapshot: missing '{key}' section")
    return value


def _number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderError(f"malformed snapshot: '{key}' must be a number, got {value!r}")
    return value


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ProviderError(f"malformed snapshot: '{key}' must be a string, got {value!r}")
    return value


def _parse_process(data: Any) -> ProcessInfo:
    if not isinstance(data, Mapping):
        raise ProviderError("malformed snapshot: process entry must be an object")
    return ProcessInfo(
        pid=int(_number(data, "pid")),
        name=_string(data, "name"),
        gpu_memory=int(_number(data, "gpu_memory")),
        process_type=ProcessType(data.get("process_type", "Unknown")),
    )
