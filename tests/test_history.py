"""Tests for _history module."""

from __future__ import annotations

import pytest

from gpuwatch._history import History, HistoryStore
from gpuwatch._types import Device, DeviceSnapshot, MemoryInfo, Metrics


def _snap(uuid: str, util: float, *, used: int = 25, total: int = 100) -> DeviceSnapshot:
    return DeviceSnapshot(
        device=Device(0, f"GPU {uuid}", uuid, "00000000:01:00.0", "550.54", "12.4", 300, 350),
        metrics=Metrics(util, 0, 0, 0, 50, 100_000, None, 1500, 5000, 1500),
        memory=MemoryInfo(total=total, used=used, free=total - used),
    )


def test_record_creates_window_lazily() -> None:
    store = HistoryStore()
    assert "A" not in store
    store.record([_snap("A", 10)])
    assert "A" in store
    assert store.read("A") == History((10.0,), (25.0,))


def test_record_appends_in_order() -> None:
    store = HistoryStore()
    for util in (10, 20, 30):
        store.record([_snap("A", util)])
    assert store.read("A").utilization == (10.0, 20.0, 30.0)


def test_capacity_is_bounded() -> None:
    store = HistoryStore()
    assert store.capacity == 60
    for i in range(250):
        store.record([_snap("A", i % 100)])
        hist = store.read("A")
        assert len(hist.utilization) <= 60
        assert len(hist.memory) <= 60
    assert len(store.read("A").utilization) == 60


def test_eviction_is_fifo() -> None:
    store = HistoryStore(capacity=60)
    for i in range(75):
        store.record([_snap("A", float(i))])
    util = store.read("A").utilization
    assert util == tuple(float(i) for i in range(15, 75))


def test_appending_never_reorders_existing_samples() -> None:
    store = HistoryStore(capacity=5)
    store.record([_snap("A", 1)])
    store.record([_snap("A", 2)])
    before = store.read("A").utilization
    store.record([_snap("A", 3)])
    after = store.read("A").utilization
    assert after[: len(before)] == before


def test_memory_percent_sample() -> None:
    store = HistoryStore()
    store.record([_snap("A", 0, used=3 * 1024**3, total=8 * 1024**3)])
    assert store.read("A").memory[0] == pytest.approx(37.5)


def test_zero_total_memory_records_sentinel() -> None:
    store = HistoryStore()
    store.record([_snap("A", 5, used=0, total=0)])
    assert store.read("A").memory == (0.0,)


def test_windows_are_independent_per_device() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10), _snap("B", 20)])
    store.record([_snap("B", 25)])
    assert store.read("A").utilization == (10.0,)
    assert store.read("B").utilization == (20.0, 25.0)


def test_prune_drops_absent_devices() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10), _snap("B", 20)])
    dropped = store.prune(["B"])
    assert dropped == ["A"]
    assert "A" not in store
    assert store.uuids() == ["B"]


def test_forget() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10)])
    assert store.forget("A") is True
    assert store.forget("A") is False
    assert len(store) == 0


def test_read_unknown_device_is_empty() -> None:
    store = HistoryStore()
    assert store.read("nope") == History((), ())


def test_read_returns_immutable_copy() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10)])
    hist = store.read("A")
    store.record([_snap("A", 20)])
    assert hist.utilization == (10.0,)
    assert isinstance(hist.utilization, tuple)


def test_device_reappearing_starts_fresh_window() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10)])
    store.prune([])
    store.record([_snap("A", 50)])
    assert store.read("A").utilization == (50.0,)


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        HistoryStore(capacity=0)


def test_unconvertible_snapshot_leaves_windows_unchanged() -> None:
    store = HistoryStore()
    store.record([_snap("A", 10)])
    broken = _snap("B", "n/a")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        store.record([_snap("A", 20), broken])
    assert store.read("A").utilization == (10.0,)
    assert "B" not in store
