"""Periodic acquisition loop: the single writer of the history store."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from gpuwatch._errors import ProviderError
from gpuwatch._history import HistoryStore
from gpuwatch._provider import TelemetryProvider
from gpuwatch._types import DeviceSnapshot

logger = logging.getLogger("gpuwatch.poller")


@dataclass(frozen=True)
class CycleOutcome:
    """Result of one acquisition cycle, success or failure."""

    cycle: int
    snapshots: tuple[DeviceSnapshot, ...] | None
    error: ProviderError | None
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.error is None


CycleListener = Callable[[CycleOutcome], None]


def _noop_listener(outcome: CycleOutcome) -> None:
    """Default listener that ignores outcomes."""


class TelemetryPoller:
    """Daemon thread that acquires telemetry on a fixed cadence.

    At most one acquisition is in flight. Ticks that elapse while one is
    running are skipped, not queued. Failures never stop the loop; the next
    tick retries unconditionally.
    """

    def __init__(
        self,
        provider: TelemetryProvider,
        history: HistoryStore,
        *,
        interval_ms: int = 1000,
        listener: CycleListener = _noop_listener,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._provider = provider
        self._history = history
        self._interval_s = interval_ms / 1000.0
        self._listener = listener
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        # Guards publication. stop() takes it to bump the generation, so no
        # publish can land after stop() returns.
        self._lock = threading.RLock()
        self._generation = 0
        self._stopped = False
        self._in_flight = False
        self._cycle = 0
        self._skipped = 0
        self._consecutive_failures = 0

    def start(self) -> None:
        """Start the acquisition loop. The first cycle runs immediately."""
        with self._lock:
            if self._stopped:
                raise RuntimeError("poller has been stopped and cannot be restarted")
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name="gpuwatch-poller", daemon=True
            )
        self._thread.start()

    def stop(self) -> None:
        """Cancel the loop and shut the provider down. Safe to call repeatedly.

        An acquisition still in flight is allowed to finish but its result is
        discarded.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._generation += 1
            thread = self._thread
        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
            if thread.is_alive():
                logger.warning("Poller thread still busy in acquisition after stop")
        try:
            self._provider.shutdown()
        except Exception:  # noqa: BLE001
            logger.debug("Provider shutdown failed", exc_info=True)

    def poll_once(self) -> bool:
        """Run one acquisition cycle on the calling thread.

        Returns False without touching the provider when stopped or when
        another acquisition is in flight, and False when the result was
        discarded because stop() ran meanwhile.
        """
        with self._lock:
            if self._stopped:
                return False
            if self._in_flight:
                self._skipped += 1
                logger.debug("Acquisition still in flight, skipping tick")
                return False
            self._in_flight = True
            generation = self._generation

        try:
            started = time.monotonic()
            snapshots, error = self._acquire()
            duration_ms = (time.monotonic() - started) * 1000.0

            with self._lock:
                if generation != self._generation:
                    logger.debug("Discarding acquisition that resolved after stop")
                    return False
                self._cycle += 1
                outcome = CycleOutcome(
                    cycle=self._cycle,
                    snapshots=snapshots,
                    error=error,
                    duration_ms=duration_ms,
                )
                self._publish(outcome)
            return True
        finally:
            with self._lock:
                self._in_flight = False

    def _acquire(self) -> tuple[tuple[DeviceSnapshot, ...] | None, ProviderError | None]:
        try:
            return tuple(self._provider.acquire()), None
        except ProviderError as exc:
            return None, exc
        except Exception as exc:  # noqa: BLE001
            logger.debug("Provider raised an unexpected error", exc_info=True)
            return None, ProviderError(f"{type(exc).__name__}: {exc}")

    def _publish(self, outcome: CycleOutcome) -> None:
        if outcome.snapshots is not None:
            try:
                self._history.record(outcome.snapshots)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Snapshots could not be recorded", exc_info=True)
                outcome = CycleOutcome(
                    cycle=outcome.cycle,
                    snapshots=None,
                    error=ProviderError(f"malformed snapshot: {type(exc).__name__}: {exc}"),
                    duration_ms=outcome.duration_ms,
                )
        if outcome.snapshots is not None:
            self._history.prune(s.uuid for s in outcome.snapshots)
            if self._consecutive_failures:
                logger.info(
                    "Acquisition recovered after %d failed cycle(s)",
                    self._consecutive_failures,
                )
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            if self._consecutive_failures == 1:
                logger.warning("Acquisition failed: %s", outcome.error)
            else:
                logger.debug(
                    "Acquisition failed (%d in a row): %s",
                    self._consecutive_failures, outcome.error,
                )
        try:
            self._listener(outcome)
        except Exception:  # noqa: BLE001
            logger.exception("Cycle listener raised")

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:  # noqa: BLE001
                logger.exception("Acquisition cycle raised unexpectedly")
            next_tick += self._interval_s
            now = time.monotonic()
            if now > next_tick:
                missed = int((now - next_tick) // self._interval_s) + 1
                next_tick += missed * self._interval_s
                with self._lock:
                    self._skipped += missed
                logger.debug("Acquisition overran the interval, skipped %d tick(s)", missed)
            if self._stop_event.wait(timeout=next_tick - now):
                break

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopped

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def cycle_count(self) -> int:
        """Number of published cycles, successful or failed."""
        return self._cycle

    @property
    def skipped_ticks(self) -> int:
        return self._skipped
