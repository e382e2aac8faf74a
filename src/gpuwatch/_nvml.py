"""NVIDIA provider backed by pynvml."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable
from typing import Any, TypeVar

import psutil

from gpuwatch._errors import ProviderError
from gpuwatch._types import (
    Device,
    DeviceSnapshot,
    MemoryInfo,
    Metrics,
    ProcessInfo,
    ProcessType,
)

logger = logging.getLogger("gpuwatch.nvml")

# pynvml is optional; the provider reports a ProviderError when it is missing.
# Suppress deprecation warning from the pynvml shim (recommends nvidia-ml-py).
warnings.filterwarnings("ignore", category=FutureWarning, message=".*pynvml.*deprecated.*")
try:
    import pynvml

    _HAS_PYNVML = True
except ImportError:
    pynvml = None  # type: ignore[assignment,unused-ignore]
    _HAS_PYNVML = False

T = TypeVar("T")


def _text(value: str | bytes) -> str:
    # Older pynvml releases return bytes.
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _format_cuda_version(version: int) -> str:
    """12020 -> '12.2'."""
    return f"{version // 1000}.{(version % 1000) // 10}"


def _process_name(pid: int) -> str:
    try:
        return psutil.Process(pid).name()
    except psutil.Error:
        return "unknown"


class NvmlProvider:
    """NVIDIA telemetry via pynvml.

    NVML is initialised on the first ``acquire()`` and re-attempted on every
    following call until it succeeds, so a missing driver is reported as a
    failed cycle rather than a construction error.
    """

    def __init__(self) -> None:
        self._initialized = False

    def _ensure_init(self) -> None:
        if self._initialized:
            return
        if not _HAS_PYNVML:
            raise ProviderError("pynvml is not installed (pip install nvidia-ml-py)")
        assert pynvml is not None
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as exc:
            raise ProviderError(f"Failed to initialize NVML: {exc}") from exc
        self._initialized = True
        logger.debug("NVML initialized")

    def _optional(self, fn: Callable[..., T], *args: Any, default: T) -> T:
        """Run an NVML query that some devices do not support."""
        assert pynvml is not None
        try:
            return fn(*args)
        except pynvml.NVMLError:
            return default

    def acquire(self) -> list[DeviceSnapshot]:
        self._ensure_init()
        assert pynvml is not None
        try:
            count = pynvml.nvmlDeviceGetCount()
            driver_version = _text(pynvml.nvmlSystemGetDriverVersion())
            cuda = self._optional(pynvml.nvmlSystemGetCudaDriverVersion, default=None)
            api_version = None if cuda is None else _format_cuda_version(cuda)
            return [self._device_snapshot(i, driver_version, api_version) for i in range(count)]
        except pynvml.NVMLError as exc:
            raise ProviderError(f"NVML error: {exc}") from exc

    def _device_snapshot(
        self, index: int, driver_version: str, api_version: str | None
    ) -> DeviceSnapshot:
        assert pynvml is not None
        handle = pynvml.nvmlDeviceGetHandleByIndex(index)

        power_limit = (
            self._optional(pynvml.nvmlDeviceGetPowerManagementLimit, handle, default=0) // 1000
        )
        constraints = self._optional(
            pynvml.nvmlDeviceGetPowerManagementLimitConstraints, handle, default=None
        )
        power_limit_max = constraints[1] // 1000 if constraints else power_limit

        device = Device(
            index=index,
            name=_text(pynvml.nvmlDeviceGetName(handle)),
            uuid=_text(pynvml.nvmlDeviceGetUUID(handle)),
            pci_bus_id=_text(pynvml.nvmlDeviceGetPciInfo(handle).busId),
            driver_version=driver_version,
            api_version=api_version,
            power_limit=power_limit,
            power_limit_max=power_limit_max,
        )

        mem = pynvml.nvmlDeviceGetMemoryInfo(handle)
        util = pynvml.nvmlDeviceGetUtilizationRates(handle)
        encoder = self._optional(pynvml.nvmlDeviceGetEncoderUtilization, handle, default=None)
        decoder = self._optional(pynvml.nvmlDeviceGetDecoderUtilization, handle, default=None)

        metrics = Metrics(
            gpu_utilization=util.gpu,
            memory_utilization=util.memory,
            encoder_utilization=encoder[0] if encoder else 0,
            decoder_utilization=decoder[0] if decoder else 0,
            temperature=self._optional(
                pynvml.nvmlDeviceGetTemperature, handle, pynvml.NVML_TEMPERATURE_GPU, default=0
            ),
            power_usage=self._optional(pynvml.nvmlDeviceGetPowerUsage, handle, default=0),
            fan_speed=self._optional(pynvml.nvmlDeviceGetFanSpeed, handle, default=None),
            clock_graphics=self._optional(
                pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_GRAPHICS, default=0
            ),
            clock_memory=self._optional(
                pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_MEM, default=0
            ),
            clock_sm=self._optional(
                pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_SM, default=0
            ),
        )

        return DeviceSnapshot(
            device=device,
            metrics=metrics,
            memory=MemoryInfo(total=mem.total, used=mem.used, free=mem.free),
            processes=self._processes(handle),
        )

    def _processes(self, handle: Any) -> tuple[ProcessInfo, ...]:
        """Compute and graphics processes; a pid in both becomes MIXED."""
        assert pynvml is not None
        by_pid: dict[int, ProcessInfo] = {}

        compute = self._optional(pynvml.nvmlDeviceGetComputeRunningProcesses, handle, default=[])
        for proc in compute:
            by_pid[proc.pid] = ProcessInfo(
                pid=proc.pid,
                name=_process_name(proc.pid),
                gpu_memory=proc.usedGpuMemory or 0,
                process_type=ProcessType.COMPUTE,
            )

        graphics = self._optional(pynvml.nvmlDeviceGetGraphicsRunningProcesses, handle, default=[])
        for proc in graphics:
            memory = proc.usedGpuMemory or 0
            existing = by_pid.get(proc.pid)
            if existing is not None:
                by_pid[proc.pid] = ProcessInfo(
                    pid=proc.pid,
                    name=existing.name,
                    gpu_memory=max(existing.gpu_memory, memory),
                    process_type=ProcessType.MIXED,
                )
            else:
                by_pid[proc.pid] = ProcessInfo(
                    pid=proc.pid,
                    name=_process_name(proc.pid),
                    gpu_memory=memory,
                    process_type=ProcessType.GRAPHICS,
                )

        return tuple(sorted(by_pid.values(), key=lambda p: p.gpu_memory, reverse=True))

    def shutdown(self) -> None:
        if not self._initialized:
            return
        self._initialized = False
        try:
            assert pynvml is not None
            pynvml.nvmlShutdown()
        except Exception:  # noqa: BLE001
            logger.debug("nvmlShutdown failed", exc_info=True)
