"""Monitor engine: wires provider, poller, history and presentation state."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType

from gpuwatch._config import MonitorConfig
from gpuwatch._filter import filter_devices
from gpuwatch._history import History, HistoryStore
from gpuwatch._poller import CycleOutcome, TelemetryPoller
from gpuwatch._processes import ProcessDirectory
from gpuwatch._provider import TelemetryProvider, create_provider
from gpuwatch._types import DeviceSnapshot, ProcessInfo
from gpuwatch._view import ViewMode, select_view

logger = logging.getLogger("gpuwatch.monitor")


@dataclass(frozen=True)
class MonitorState:
    """Everything the rendering layer needs for one cycle.

    Replaced wholesale on every cycle; never mutated. In ERROR mode the
    devices and processes of earlier cycles are not carried over.
    """

    mode: ViewMode
    devices: tuple[DeviceSnapshot, ...] = ()
    directory: ProcessDirectory = field(default_factory=ProcessDirectory)
    error: str | None = None
    cycle: int = 0
    updated_at: float | None = None

    @property
    def device_count(self) -> int:
        return len(self.devices)

    def device(self, uuid: str) -> DeviceSnapshot | None:
        for snap in self.devices:
            if snap.uuid == uuid:
                return snap
        return None


StateCallback = Callable[[MonitorState], None]


class Monitor:
    """Live telemetry monitor.

    Usage::

        with Monitor(config=MonitorConfig(provider="mock")) as mon:
            state = mon.state
            for snap in mon.visible_devices("h100"):
                util, mem = mon.history(snap.uuid)
    """

    def __init__(
        self,
        provider: TelemetryProvider | None = None,
        *,
        config: MonitorConfig | None = None,
    ) -> None:
        self.config = config if config is not None else MonitorConfig()
        self._provider = provider if provider is not None else create_provider(self.config)
        self._history = HistoryStore(self.config.history_size)
        self._state = MonitorState(mode=ViewMode.LOADING)
        self._subscribers: list[StateCallback] = []
        self._subscribers_lock = threading.Lock()
        self._poller = TelemetryPoller(
            self._provider,
            self._history,
            interval_ms=self.config.interval_ms,
            listener=self._on_cycle,
        )

    def start(self) -> None:
        """Begin periodic acquisition."""
        self._poller.start()

    def stop(self) -> None:
        """Stop acquisition. No state is published after this returns."""
        self._poller.stop()

    def refresh(self) -> MonitorState:
        """Run one acquisition cycle synchronously and return the new state."""
        self._poller.poll_once()
        return self._state

    def __enter__(self) -> Monitor:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Call *callback* with every new state. Returns an unsubscribe function."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _on_cycle(self, outcome: CycleOutcome) -> None:
        if outcome.snapshots is not None:
            state = MonitorState(
                mode=select_view(len(outcome.snapshots)),
                devices=outcome.snapshots,
                directory=ProcessDirectory(outcome.snapshots),
                cycle=outcome.cycle,
                updated_at=time.time(),
            )
        else:
            message = "acquisition failed" if outcome.error is None else outcome.error.message
            state = MonitorState(
                mode=ViewMode.ERROR,
                error=message,
                cycle=outcome.cycle,
                updated_at=time.time(),
            )
        if state.mode is not self._state.mode:
            logger.debug("Mode %s -> %s", self._state.mode.value, state.mode.value)
        self._state = state

        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(state)
            except Exception:  # noqa: BLE001
                logger.exception("State subscriber raised")

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def mode(self) -> ViewMode:
        return self._state.mode

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def devices(self) -> tuple[DeviceSnapshot, ...]:
        return self._state.devices

    @property
    def directory(self) -> ProcessDirectory:
        return self._state.directory

    @property
    def is_running(self) -> bool:
        return self._poller.is_running

    def visible_devices(self, term: str = "") -> list[DeviceSnapshot]:
        """Devices to display for the current mode.

        The device filter only applies in GRID mode; EXPANDED always shows its
        single device.
        """
        state = self._state
        if state.mode is ViewMode.GRID:
            return filter_devices(state.devices, term)
        if state.mode is ViewMode.EXPANDED:
            return list(state.devices)
        return []

    def history(self, uuid: str) -> History:
        """(utilization, memory-percent) samples for a device, oldest first."""
        return self._history.read(uuid)

    def processes(self, uuid: str, term: str = "") -> list[ProcessInfo]:
        return self._state.directory.search(uuid, term)
