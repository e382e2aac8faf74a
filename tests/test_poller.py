"""Tests for _poller module."""

from __future__ import annotations

import threading
import time

import pytest

from gpuwatch._errors import ProviderError
from gpuwatch._history import HistoryStore
from gpuwatch._poller import CycleOutcome, TelemetryPoller
from gpuwatch._types import Device, DeviceSnapshot, MemoryInfo, Metrics


def _snap(uuid: str, util: float) -> DeviceSnapshot:
    return DeviceSnapshot(
        device=Device(0, "Test GPU", uuid, "00000000:01:00.0", "550.54", None, 300, 300),
        metrics=Metrics(util, 0, 0, 0, 50, 0, None, 0, 0, 0),
        memory=MemoryInfo(total=100, used=50, free=50),
    )


class _ScriptedProvider:
    """Returns queued results in order; repeats the last one when exhausted."""

    def __init__(self, *results: list[DeviceSnapshot] | Exception) -> None:
        self._results = list(results)
        self.calls = 0
        self.shutdown_calls = 0

    def acquire(self) -> list[DeviceSnapshot]:
        self.calls += 1
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def shutdown(self) -> None:
        self.shutdown_calls += 1


class _BlockingProvider:
    """Blocks inside acquire() until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def acquire(self) -> list[DeviceSnapshot]:
        self.calls += 1
        self.entered.set()
        self.release.wait(timeout=5.0)
        return [_snap("A", 99)]

    def shutdown(self) -> None:
        pass


class TestPollOnce:
    def test_success_records_history(self) -> None:
        store = HistoryStore()
        poller = TelemetryPoller(_ScriptedProvider([_snap("A", 10)]), store)
        assert poller.poll_once() is True
        assert store.read("A").utilization == (10.0,)
        assert poller.cycle_count == 1

    def test_listener_receives_outcome(self) -> None:
        outcomes: list[CycleOutcome] = []
        poller = TelemetryPoller(
            _ScriptedProvider([_snap("A", 10)]), HistoryStore(), listener=outcomes.append
        )
        poller.poll_once()
        assert len(outcomes) == 1
        assert outcomes[0].ok
        assert outcomes[0].cycle == 1
        assert outcomes[0].snapshots is not None
        assert outcomes[0].snapshots[0].uuid == "A"

    def test_failure_does_not_touch_history(self) -> None:
        store = HistoryStore()
        provider = _ScriptedProvider(
            [_snap("A", 10)], ProviderError("driver gone"), ProviderError("driver gone")
        )
        outcomes: list[CycleOutcome] = []
        poller = TelemetryPoller(provider, store, listener=outcomes.append)

        poller.poll_once()
        poller.poll_once()
        poller.poll_once()

        assert store.read("A").utilization == (10.0,)
        assert [o.ok for o in outcomes] == [True, False, False]
        assert outcomes[1].error is not None
        assert outcomes[1].error.message == "driver gone"

    def test_unexpected_exception_becomes_provider_error(self) -> None:
        outcomes: list[CycleOutcome] = []
        poller = TelemetryPoller(
            _ScriptedProvider(RuntimeError("boom")), HistoryStore(), listener=outcomes.append
        )
        poller.poll_once()
        assert isinstance(outcomes[0].error, ProviderError)
        assert "boom" in outcomes[0].error.message

    def test_malformed_snapshot_fails_the_cycle(self) -> None:
        store = HistoryStore()
        outcomes: list[CycleOutcome] = []
        provider = _ScriptedProvider([_snap("A", 10), _snap("B", "n/a")])  # type: ignore[arg-type]
        poller = TelemetryPoller(provider, store, listener=outcomes.append)
        assert poller.poll_once() is True
        assert not outcomes[0].ok
        assert outcomes[0].snapshots is None
        assert outcomes[0].error is not None
        assert "malformed snapshot" in outcomes[0].error.message
        assert len(store) == 0

    def test_prunes_devices_absent_from_cycle(self) -> None:
        store = HistoryStore()
        provider = _ScriptedProvider([_snap("A", 10), _snap("B", 20)], [_snap("B", 25)])
        poller = TelemetryPoller(provider, store)
        poller.poll_once()
        poller.poll_once()
        assert "A" not in store
        assert store.read("B").utilization == (20.0, 25.0)

    def test_listener_exception_does_not_break_cycle(self) -> None:
        def bad_listener(outcome: CycleOutcome) -> None:
            raise RuntimeError("listener exploded")

        store = HistoryStore()
        poller = TelemetryPoller(_ScriptedProvider([_snap("A", 1)]), store, listener=bad_listener)
        assert poller.poll_once() is True
        assert poller.poll_once() is True
        assert store.read("A").utilization == (1.0, 1.0)

    def test_overlapping_poll_is_skipped(self) -> None:
        provider = _BlockingProvider()
        poller = TelemetryPoller(provider, HistoryStore())
        worker = threading.Thread(target=poller.poll_once)
        worker.start()
        assert provider.entered.wait(timeout=2.0)

        assert poller.poll_once() is False
        assert provider.calls == 1
        assert poller.skipped_ticks == 1

        provider.release.set()
        worker.join(timeout=2.0)
        assert poller.cycle_count == 1

    def test_poll_after_stop_is_noop(self) -> None:
        provider = _ScriptedProvider([_snap("A", 1)])
        poller = TelemetryPoller(provider, HistoryStore())
        poller.stop()
        assert poller.poll_once() is False
        assert provider.calls == 0

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError):
            TelemetryPoller(_ScriptedProvider([]), HistoryStore(), interval_ms=0)


class TestLifecycle:
    def test_start_and_stop(self) -> None:
        poller = TelemetryPoller(_ScriptedProvider([_snap("A", 1)]), HistoryStore(), interval_ms=20)
        poller.start()
        assert poller.is_running
        poller.stop()
        assert not poller.is_running
        assert poller.is_stopped

    def test_first_cycle_runs_immediately(self) -> None:
        done = threading.Event()
        poller = TelemetryPoller(
            _ScriptedProvider([_snap("A", 1)]),
            HistoryStore(),
            interval_ms=10_000,  # Long interval
            listener=lambda outcome: done.set(),
        )
        poller.start()
        assert done.wait(timeout=2.0)
        poller.stop()

    def test_polls_repeatedly(self) -> None:
        store = HistoryStore()
        poller = TelemetryPoller(_ScriptedProvider([_snap("A", 5)]), store, interval_ms=20)
        poller.start()
        time.sleep(0.2)
        poller.stop()
        assert len(store.read("A").utilization) >= 2

    def test_keeps_retrying_after_failures(self) -> None:
        provider = _ScriptedProvider(ProviderError("nope"))
        poller = TelemetryPoller(provider, HistoryStore(), interval_ms=20)
        poller.start()
        time.sleep(0.2)
        poller.stop()
        assert provider.calls >= 3

    def test_loop_survives_malformed_snapshots(self) -> None:
        provider = _ScriptedProvider([_snap("A", 10), _snap("B", "n/a")])  # type: ignore[arg-type]
        store = HistoryStore()
        poller = TelemetryPoller(provider, store, interval_ms=20)
        poller.start()
        time.sleep(0.2)
        assert poller.is_running
        poller.stop()
        assert provider.calls >= 3
        assert "A" not in store

    def test_loop_survives_a_raising_cycle(self) -> None:
        class _BrokenStore(HistoryStore):
            def prune(self, keep: object) -> list[str]:
                raise RuntimeError("prune failed")

        provider = _ScriptedProvider([_snap("A", 10)])
        poller = TelemetryPoller(provider, _BrokenStore(), interval_ms=20)
        poller.start()
        time.sleep(0.2)
        assert poller.is_running
        poller.stop()
        assert provider.calls >= 3

    def test_thread_is_daemon(self) -> None:
        poller = TelemetryPoller(_ScriptedProvider([]), HistoryStore(), interval_ms=50)
        poller.start()
        assert poller._thread is not None
        assert poller._thread.daemon is True
        poller.stop()

    def test_double_start_is_idempotent(self) -> None:
        poller = TelemetryPoller(_ScriptedProvider([]), HistoryStore(), interval_ms=50)
        poller.start()
        thread1 = poller._thread
        poller.start()  # Should not create a second thread
        assert poller._thread is thread1
        poller.stop()

    def test_stop_is_idempotent_and_shuts_provider_down_once(self) -> None:
        provider = _ScriptedProvider([])
        poller = TelemetryPoller(provider, HistoryStore(), interval_ms=50)
        poller.start()
        poller.stop()
        poller.stop()
        assert provider.shutdown_calls == 1

    def test_stop_without_start(self) -> None:
        provider = _ScriptedProvider([])
        poller = TelemetryPoller(provider, HistoryStore())
        poller.stop()
        assert provider.shutdown_calls == 1

    def test_cannot_restart_after_stop(self) -> None:
        poller = TelemetryPoller(_ScriptedProvider([]), HistoryStore())
        poller.stop()
        with pytest.raises(RuntimeError):
            poller.start()

    def test_in_flight_result_discarded_after_stop(self) -> None:
        provider = _BlockingProvider()
        store = HistoryStore()
        outcomes: list[CycleOutcome] = []
        poller = TelemetryPoller(provider, store, listener=outcomes.append)
        result: list[bool] = []
        worker = threading.Thread(target=lambda: result.append(poller.poll_once()))
        worker.start()
        assert provider.entered.wait(timeout=2.0)

        poller.stop()
        provider.release.set()
        worker.join(timeout=2.0)

        assert result == [False]
        assert outcomes == []
        assert len(store) == 0
        assert poller.cycle_count == 0

    def test_overrun_ticks_are_skipped(self) -> None:
        class _SlowProvider:
            calls = 0

            def acquire(self) -> list[DeviceSnapshot]:
                self.calls += 1
                time.sleep(0.12)
                return []

            def shutdown(self) -> None:
                pass

        provider = _SlowProvider()
        poller = TelemetryPoller(provider, HistoryStore(), interval_ms=20)
        poller.start()
        time.sleep(0.4)
        poller.stop()
        assert poller.skipped_ticks > 0
        # Skipped ticks are not queued: far fewer calls than elapsed ticks.
        assert provider.calls <= 5
