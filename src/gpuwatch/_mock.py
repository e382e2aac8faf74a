"""Simulated provider for demos, benchmarks and tests without a GPU."""

from __future__ import annotations

import math
from collections.abc import Iterable

from gpuwatch._errors import ProviderError
from gpuwatch._types import (
    Device,
    DeviceSnapshot,
    MemoryInfo,
    Metrics,
    ProcessInfo,
    ProcessType,
)

_GIB = 1024**3
_MIB = 1024**2


class MockProvider:
    """Deterministic provider that simulates ``num_gpus`` devices.

    Utilization follows a slow wave per device so charts move. ``fail_on``
    lists 1-based cycle numbers that raise ProviderError instead.
    """

    def __init__(
        self,
        *,
        num_gpus: int = 2,
        fail_on: Iterable[int] = (),
        model: str = "NVIDIA H100 80GB HBM3",
        memory_total_gb: int = 80,
    ) -> None:
        if num_gpus < 0:
            raise ValueError(f"num_gpus must be non-negative, got {num_gpus}")
        self._num_gpus = num_gpus
        self._fail_on = frozenset(fail_on)
        self._model = model
        self._memory_total = memory_total_gb * _GIB
        self._cycle = 0
        self.shutdown_called = False

    @property
    def cycle(self) -> int:
        return self._cycle

    def acquire(self) -> list[DeviceSnapshot]:
        self._cycle += 1
        if self._cycle in self._fail_on:
            raise ProviderError(f"simulated acquisition failure on cycle {self._cycle}")
        return [self._snapshot(i) for i in range(self._num_gpus)]

    def shutdown(self) -> None:
        self.shutdown_called = True

    def _snapshot(self, i: int) -> DeviceSnapshot:
        phase = self._cycle / 10.0 + i
        util = round(50 + 45 * math.sin(phase))
        used = int(self._memory_total * (0.3 + 0.05 * i + 0.1 * (util / 100)))
        procs = (
            ProcessInfo(
                pid=1000 + i * 10,
                name="python3",
                gpu_memory=used // 2,
                process_type=ProcessType.COMPUTE,
            ),
            ProcessInfo(
                pid=1001 + i * 10,
                name="Xorg",
                gpu_memory=256 * _MIB,
                process_type=ProcessType.GRAPHICS,
            ),
        )
        return DeviceSnapshot(
            device=Device(
                index=i,
                name=self._model,
                uuid=f"GPU-{i:04d}",
                pci_bus_id=f"00000000:{i + 1:02X}:00.0",
                driver_version="550.54.15",
                api_version="12.4",
                power_limit=700,
                power_limit_max=700,
            ),
            metrics=Metrics(
                gpu_utilization=util,
                memory_utilization=util // 2,
                encoder_utilization=0,
                decoder_utilization=0,
                temperature=40 + util // 2,
                power_usage=(100 + util * 5) * 1000,
                fan_speed=None,
                clock_graphics=1980,
                clock_memory=2619,
                clock_sm=1980,
            ),
            memory=MemoryInfo(
                total=self._memory_total,
                used=used,
                free=self._memory_total - used,
            ),
            processes=procs,
        )
