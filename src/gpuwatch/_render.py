"""Text renderers for the terminal surface: JSON, rich tables and the dashboard."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gpuwatch._filter import filter_devices
from gpuwatch._history import History
from gpuwatch._monitor import MonitorState
from gpuwatch._processes import ProcessEntry
from gpuwatch._types import DeviceSnapshot, ProcessInfo, ProcessType
from gpuwatch._view import ViewMode

HistoryReader = Callable[[str], History]

_BLOCKS = " ▁▂▃▄▅▆▇█"
_NAME_WIDTH = 30


def sparkline(samples: Sequence[float], width: int | None = None, maximum: float = 100.0) -> str:
    """Render samples as a row of block characters, newest on the right."""
    if width is not None:
        samples = samples[-width:] if width > 0 else ()
    steps = len(_BLOCKS) - 1
    chars = []
    for value in samples:
        ratio = min(max(value / maximum, 0.0), 1.0) if maximum > 0 else 0.0
        chars.append(_BLOCKS[round(ratio * steps)])
    return "".join(chars)


def load_style(percent: float) -> str:
    if percent > 80:
        return "red"
    if percent > 50:
        return "yellow"
    return "green"


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _fan(snapshot: DeviceSnapshot) -> str:
    fan = snapshot.metrics.fan_speed
    return "N/A" if fan is None else f"{fan:.0f}%"


# --- JSON ---


def devices_json(snapshots: Sequence[DeviceSnapshot], *, pretty: bool = True) -> str:
    payload = [s.to_dict() for s in snapshots]
    if pretty:
        return json.dumps(payload, indent=2)
    return json.dumps(payload, separators=(",", ":"))


def processes_json(entries: Sequence[ProcessEntry]) -> str:
    return json.dumps([e.to_dict() for e in entries], indent=2)


# --- tables and panels ---


def _process_frame(title: str | None) -> Table:
    table = Table(title=title, expand=True, header_style="bold cyan")
    table.add_column("PID", justify="right", no_wrap=True)
    table.add_column("Name")
    table.add_column("Mem", justify="right", no_wrap=True)
    table.add_column("Type", no_wrap=True)
    return table


def _add_process_rows(table: Table, processes: Sequence[ProcessInfo]) -> None:
    for proc in processes:
        table.add_row(
            str(proc.pid),
            Text(truncate(proc.name, _NAME_WIDTH)),
            f"{proc.gpu_memory_mib} MiB",
            proc.process_type.short_label,
        )


def process_table(processes: Sequence[ProcessInfo], *, title: str | None = None) -> Table:
    table = _process_frame(title)
    _add_process_rows(table, processes)
    if not processes:
        table.add_row("", Text("No processes found", style="dim"), "", "")
    return table


def grouped_process_table(
    groups: Mapping[ProcessType, Sequence[ProcessInfo]], *, title: str | None = None
) -> Table:
    """Process table with a heading row per classification, in mapping order."""
    table = _process_frame(title)
    for kind, members in groups.items():
        table.add_row("", Text(f"{kind.value} ({len(members)})", style="bold"), "", "")
        _add_process_rows(table, members)
    if not groups:
        table.add_row("", Text("No processes found", style="dim"), "", "")
    return table


def all_processes_table(entries: Sequence[ProcessEntry]) -> Table:
    table = Table(title="GPU Processes", header_style="bold cyan")
    table.add_column("GPU", justify="right")
    table.add_column("PID", justify="right")
    table.add_column("Name")
    table.add_column("Memory", justify="right")
    table.add_column("Type")
    for entry in entries:
        proc = entry.process
        table.add_row(
            str(entry.gpu_index),
            str(proc.pid),
            Text(truncate(proc.name, 26)),
            f"{proc.gpu_memory_mib} MiB",
            proc.process_type.short_label,
        )
    return table


def device_panel(
    snapshot: DeviceSnapshot,
    *,
    history: History | None = None,
    processes: Sequence[ProcessInfo] | None = None,
    process_groups: Mapping[ProcessType, Sequence[ProcessInfo]] | None = None,
    width: int = 60,
) -> Panel:
    """Detail card for one device, as printed by ``--once`` and the expanded view.

    *process_groups* takes precedence over a flat *processes* list.
    """
    dev, met, mem = snapshot.device, snapshot.metrics, snapshot.memory
    temp = met.temperature_status

    lines: list[RenderableType] = [
        Text.assemble(
            ("GPU Usage: ", "bold"),
            (f"{met.gpu_utilization:>3.0f}%", load_style(met.gpu_utilization)),
            "   ",
            ("Memory: ", "bold"),
            f"{mem.used_gib:.1f}/{mem.total_gib:.1f} GiB ",
            (f"({mem.usage_percent:.0f}%)", load_style(mem.usage_percent)),
        ),
        Text.assemble(
            ("Temp: ", "bold"),
            (f"{met.temperature:.0f}°C", temp.color),
            "   ",
            ("Power: ", "bold"),
            f"{met.power_watts:.1f}/{dev.power_limit:.0f} W",
            "   ",
            ("Fan: ", "bold"),
            _fan(snapshot),
        ),
        Text.assemble(
            ("Clocks: ", "bold"),
            f"Graphics {met.clock_graphics:.0f} MHz  "
            f"Memory {met.clock_memory:.0f} MHz  SM {met.clock_sm:.0f} MHz",
        ),
        Text(
            f"Driver {dev.driver_version}  PCI {dev.pci_bus_id}  "
            f"CUDA {dev.api_version or 'N/A'}  Power Limit {dev.power_limit:.0f}W",
            style="dim",
        ),
    ]
    if history is not None:
        lines.append(Text(f"GPU Load {met.gpu_utilization:.0f}%", style="bold"))
        util_style = load_style(met.gpu_utilization)
        lines.append(Text(sparkline(history.utilization, width), style=util_style))
        lines.append(Text(f"Memory {mem.usage_percent:.0f}%", style="bold"))
        lines.append(Text(sparkline(history.memory, width), style="magenta"))
    if process_groups is not None:
        total = sum(len(members) for members in process_groups.values())
        lines.append(grouped_process_table(process_groups, title=f"Processes ({total})"))
    elif processes is not None:
        lines.append(process_table(processes, title=f"Processes ({len(processes)})"))

    return Panel(
        Group(*lines),
        title=Text(f"GPU {dev.index}: {dev.name}", style="bold"),
        title_align="left",
        border_style="blue",
    )


def devices_panels(snapshots: Sequence[DeviceSnapshot]) -> Group:
    """One card per device with its processes, for one-shot output."""
    return Group(*(device_panel(s, processes=s.processes) for s in snapshots))


def grid_table(
    snapshots: Sequence[DeviceSnapshot], history: HistoryReader, *, spark_width: int = 30
) -> Table:
    table = Table(expand=True, header_style="bold cyan")
    table.add_column("GPU", justify="right", no_wrap=True)
    table.add_column("Name")
    table.add_column("Load", justify="right", no_wrap=True)
    table.add_column("Load history", no_wrap=True)
    table.add_column("Memory", justify="right", no_wrap=True)
    table.add_column("Memory history", no_wrap=True)
    table.add_column("Temp", justify="right", no_wrap=True)
    table.add_column("Power", justify="right", no_wrap=True)
    table.add_column("Procs", justify="right", no_wrap=True)
    for snap in snapshots:
        dev, met, mem = snap.device, snap.metrics, snap.memory
        util_hist, mem_hist = history(snap.uuid)
        table.add_row(
            str(dev.index),
            Text(truncate(dev.name, _NAME_WIDTH)),
            Text(f"{met.gpu_utilization:.0f}%", style=load_style(met.gpu_utilization)),
            Text(sparkline(util_hist, spark_width), style=load_style(met.gpu_utilization)),
            f"{mem.used_gib:.1f}/{mem.total_gib:.1f} GiB",
            Text(sparkline(mem_hist, spark_width), style="magenta"),
            Text(f"{met.temperature:.0f}°C", style=met.temperature_status.color),
            f"{met.power_watts:.0f} W",
            str(len(snap.processes)),
        )
    return table


# --- dashboard ---


def _header(state: MonitorState, term: str) -> Text:
    header = Text.assemble((" GPU Monitor ", "bold cyan"), " Real-time GPU monitoring")
    if state.mode is ViewMode.GRID:
        header.append(f"  │ {state.device_count} GPUs", style="white")
    if term:
        header.append(f"  │ filter: {term!r}", style="yellow")
    header.append("  │ Ctrl+C to quit", style="dim")
    return header


def dashboard(
    state: MonitorState,
    history: HistoryReader,
    *,
    term: str = "",
    spark_width: int = 60,
) -> RenderableType:
    """Render the whole live view for the current mode.

    *term* is the device filter in grid mode and the process filter in
    expanded mode.
    """
    header = _header(state, term)

    if state.mode is ViewMode.LOADING:
        body: RenderableType = Text("Loading GPU info...", style="dim")
    elif state.mode is ViewMode.ERROR:
        body = Panel(
            Text(state.error or "acquisition failed", style="red"),
            title="Acquisition failed",
            border_style="red",
        )
    elif state.mode is ViewMode.EMPTY:
        body = Panel(
            Text("No GPU devices reported.", style="yellow"),
            border_style="yellow",
        )
    elif state.mode is ViewMode.EXPANDED:
        snap = state.devices[0]
        body = device_panel(
            snap,
            history=history(snap.uuid),
            process_groups=state.directory.grouped(snap.uuid, term),
            width=spark_width,
        )
    else:
        visible = filter_devices(state.devices, term)
        if visible:
            body = grid_table(visible, history, spark_width=max(spark_width // 2, 10))
        else:
            body = Text(f'No GPUs found matching "{term}"', style="dim")

    return Group(header, body)

