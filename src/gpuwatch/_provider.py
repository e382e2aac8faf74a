"""Acquisition boundary: provider protocol and factory."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from gpuwatch._config import PROVIDER_KINDS, MonitorConfig
from gpuwatch._errors import ProviderError
from gpuwatch._types import DeviceSnapshot

logger = logging.getLogger("gpuwatch.provider")


@runtime_checkable
class TelemetryProvider(Protocol):
    """Structural protocol for telemetry sources.

    ``acquire`` returns one snapshot per device, or raises ProviderError.
    """

    def acquire(self) -> list[DeviceSnapshot]: ...

    def shutdown(self) -> None: ...


def create_provider(config: MonitorConfig) -> TelemetryProvider:
    """Factory: build the provider named by ``config.provider``."""
    kind = config.provider
    logger.debug("Creating %s provider", kind)
    if kind == "nvml":
        from gpuwatch._nvml import NvmlProvider

        return NvmlProvider()
    if kind == "mock":
        from gpuwatch._mock import MockProvider

        return MockProvider(num_gpus=config.mock_devices)
    if kind == "replay":
        from gpuwatch._replay import ReplayProvider

        if config.replay_path is None:
            raise ProviderError("replay provider requires a capture file")
        return ReplayProvider(config.replay_path, loop=config.replay_loop)
    raise ValueError(f"unknown provider {kind!r}, expected one of {PROVIDER_KINDS}")
