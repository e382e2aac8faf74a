"""gpuwatch: live GPU telemetry with rolling per-device history."""

from __future__ import annotations

from gpuwatch._config import MonitorConfig
from gpuwatch._errors import GpuwatchError, ProviderError
from gpuwatch._filter import filter_devices, filter_processes, matches_device, matches_process
from gpuwatch._history import History, HistoryStore
from gpuwatch._mock import MockProvider
from gpuwatch._monitor import Monitor, MonitorState
from gpuwatch._poller import CycleOutcome, TelemetryPoller
from gpuwatch._processes import ProcessDirectory, ProcessEntry
from gpuwatch._provider import TelemetryProvider, create_provider
from gpuwatch._types import (
    Device,
    DeviceSnapshot,
    MemoryInfo,
    Metrics,
    ProcessInfo,
    ProcessType,
    TemperatureStatus,
)
from gpuwatch._view import ViewMode, select_view

__version__ = "0.1.0"

__all__ = [
    "CycleOutcome",
    "Device",
    "DeviceSnapshot",
    "GpuwatchError",
    "History",
    "HistoryStore",
    "MemoryInfo",
    "Metrics",
    "MockProvider",
    "Monitor",
    "MonitorConfig",
    "MonitorState",
    "ProcessDirectory",
    "ProcessEntry",
    "ProcessInfo",
    "ProcessType",
    "ProviderError",
    "TelemetryPoller",
    "TelemetryProvider",
    "TemperatureStatus",
    "ViewMode",
    "__version__",
    "acquire_once",
    "create_provider",
    "filter_devices",
    "filter_processes",
    "matches_device",
    "matches_process",
    "select_view",
]


def acquire_once(provider: TelemetryProvider | None = None) -> list[DeviceSnapshot]:
    """Take a single acquisition without starting a monitor.

    Usage::

        for snap in gpuwatch.acquire_once():
            print(snap.device.name, snap.metrics.gpu_utilization)

    Raises:
        ProviderError: if the acquisition fails.
    """
    owned = provider is None
    if provider is None:
        provider = create_provider(MonitorConfig())
    try:
        return provider.acquire()
    finally:
        if owned:
            provider.shutdown()
