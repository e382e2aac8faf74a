"""gpuwatch Quick Start: poll GPUs in the background and read the latest state."""

import time

import gpuwatch

# 1. Configure the monitor (use provider="nvml" on a machine with NVIDIA GPUs)
config = gpuwatch.MonitorConfig(interval_ms=500, provider="mock", mock_devices=2)

# 2. Start polling; the first cycle runs immediately
with gpuwatch.Monitor(config=config) as monitor:
    time.sleep(2)

    # 3. Read the current state
    state = monitor.state
    print(f"mode={state.mode.value} devices={state.device_count}")

    for snap in monitor.visible_devices("h100"):
        util, mem = monitor.history(snap.uuid)
        print(
            f"GPU {snap.device.index} {snap.device.name}: "
            f"{snap.metrics.gpu_utilization:.0f}% load, "
            f"{snap.memory.usage_percent:.0f}% memory, "
            f"{len(util)} samples"
        )
        for proc in monitor.processes(snap.uuid):
            print(f"    {proc.pid:>6} {proc.name:<16} {proc.gpu_memory_mib} MiB {proc.process_type.value}")

# 4. Leaving the block stops polling and shuts the provider down
print("Done!")
