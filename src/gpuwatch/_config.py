"""Monitor configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

PROVIDER_KINDS = ("nvml", "mock", "replay")


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable monitor configuration."""

    interval_ms: int = 1000
    history_size: int = 60
    provider: str = "nvml"
    mock_devices: int = 2
    replay_path: str | None = None
    replay_loop: bool = False

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {self.interval_ms}")
        if self.history_size <= 0:
            raise ValueError(f"history_size must be positive, got {self.history_size}")
        if self.provider not in PROVIDER_KINDS:
            raise ValueError(f"provider must be one of {PROVIDER_KINDS}, got {self.provider!r}")
        if self.mock_devices < 0:
            raise ValueError(f"mock_devices must be non-negative, got {self.mock_devices}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MonitorConfig:
        """Build a config from ``GPUWATCH_*`` environment variables."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if "GPUWATCH_INTERVAL_MS" in env:
            kwargs["interval_ms"] = int(env["GPUWATCH_INTERVAL_MS"])
        if "GPUWATCH_HISTORY_SIZE" in env:
            kwargs["history_size"] = int(env["GPUWATCH_HISTORY_SIZE"])
        if "GPUWATCH_PROVIDER" in env:
            kwargs["provider"] = env["GPUWATCH_PROVIDER"]
        if "GPUWATCH_MOCK_DEVICES" in env:
            kwargs["mock_devices"] = int(env["GPUWATCH_MOCK_DEVICES"])
        if "GPUWATCH_REPLAY" in env:
            kwargs["replay_path"] = env["GPUWATCH_REPLAY"]
        return cls(**kwargs)  # type: ignore[arg-type]
