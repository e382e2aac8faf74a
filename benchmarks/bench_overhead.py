#!/usr/bin/env python3
"""Per-cycle overhead benchmark.

Measures the cost of the work done on every acquisition cycle, with the
simulated provider so no GPU is needed:
  1. HistoryStore.record + prune (8 devices)
  2. MonitorState construction (view selection + process directory)
  3. Device filter over the grid
  4. Full poll_once() cycle through the Monitor

Target: well under 1ms per cycle at 8 devices.

Usage:
    python benchmarks/bench_overhead.py
"""

from __future__ import annotations

import time

from gpuwatch._filter import filter_devices
from gpuwatch._history import HistoryStore
from gpuwatch._mock import MockProvider
from gpuwatch._monitor import Monitor, MonitorState
from gpuwatch._processes import ProcessDirectory
from gpuwatch._view import select_view

NUM_GPUS = 8


def bench_history_record(iterations: int = 100_000) -> float:
    """Benchmark: append one cycle of samples and prune absent devices."""
    snapshots = MockProvider(num_gpus=NUM_GPUS).acquire()
    uuids = [s.uuid for s in snapshots]
    store = HistoryStore()

    # Warmup
    for _ in range(1000):
        store.record(snapshots)
        store.prune(uuids)

    start = time.perf_counter_ns()
    for _ in range(iterations):
        store.record(snapshots)
        store.prune(uuids)
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_state_build(iterations: int = 100_000) -> float:
    """Benchmark: derive the presentation state from one cycle."""
    snapshots = tuple(MockProvider(num_gpus=NUM_GPUS).acquire())

    start = time.perf_counter_ns()
    for _ in range(iterations):
        MonitorState(
            mode=select_view(len(snapshots)),
            devices=snapshots,
            directory=ProcessDirectory(snapshots),
        )
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_filter(iterations: int = 200_000) -> float:
    """Benchmark: device filter over all devices."""
    snapshots = MockProvider(num_gpus=NUM_GPUS).acquire()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        filter_devices(snapshots, "h100")
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_full_cycle(iterations: int = 20_000) -> float:
    """Benchmark: synchronous cycle including simulated acquisition."""
    monitor = Monitor(MockProvider(num_gpus=NUM_GPUS))

    # Warmup
    for _ in range(500):
        monitor.refresh()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        monitor.refresh()
    elapsed = time.perf_counter_ns() - start

    monitor.stop()
    return elapsed / iterations


def main() -> None:
    print("=" * 60)
    print(f"gpuwatch Per-Cycle Overhead Benchmark ({NUM_GPUS} GPUs)")
    print("=" * 60)

    results: list[tuple[str, float, str]] = []

    ns = bench_history_record()
    status = "PASS" if ns < 50_000 else "WARN" if ns < 200_000 else "FAIL"
    results.append(("History record + prune", ns, f"{status} (target < 50μs)"))

    ns = bench_state_build()
    status = "PASS" if ns < 50_000 else "WARN" if ns < 200_000 else "FAIL"
    results.append(("MonitorState build", ns, f"{status} (target < 50μs)"))

    ns = bench_filter()
    status = "PASS" if ns < 20_000 else "WARN" if ns < 100_000 else "FAIL"
    results.append(("Device filter", ns, f"{status} (target < 20μs)"))

    ns = bench_full_cycle()
    status = "PASS" if ns < 1_000_000 else "WARN" if ns < 5_000_000 else "FAIL"
    results.append(("Full cycle (mock provider)", ns, f"{status} (target < 1ms)"))

    print()
    for name, ns_val, note in results:
        if ns_val >= 1000:
            display = f"{ns_val / 1000:.2f}μs"
        else:
            display = f"{ns_val:.0f}ns"
        print(f"  {name:40s}  {display:>10s}   {note}")

    print()
    all_pass = all("PASS" in r[2] or "WARN" in r[2] for r in results)
    if all_pass:
        print("All benchmarks within acceptable range.")
    else:
        print("WARNING: Some benchmarks exceeded target. Review above.")


if __name__ == "__main__":
    main()
