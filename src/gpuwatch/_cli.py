"""Command-line entry point: one-shot output, JSON stream and live dashboard."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import threading
from collections.abc import Callable, Sequence

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape

from gpuwatch._config import MonitorConfig
from gpuwatch._errors import ProviderError
from gpuwatch._monitor import Monitor, MonitorState
from gpuwatch._render import (
    all_processes_table,
    dashboard,
    devices_json,
    devices_panels,
    processes_json,
)
from gpuwatch._view import ViewMode

logger = logging.getLogger("gpuwatch.cli")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpuwatch",
        description="Real-time GPU monitoring.",
    )
    parser.add_argument("-o", "--once", action="store_true", help="print GPU info once and exit")
    parser.add_argument("-w", "--watch", action="store_true", help="continuous output")
    parser.add_argument("-j", "--json", action="store_true", help="output as JSON")
    parser.add_argument(
        "-i", "--interval", type=int, default=None, metavar="MS",
        help="refresh interval in milliseconds (default: 1000, or GPUWATCH_INTERVAL_MS)",
    )
    parser.add_argument(
        "-f", "--filter", default="", metavar="TERM",
        help="device filter (several GPUs) or process filter (one GPU)",
    )
    parser.add_argument(
        "-n", "--count", type=_positive_int, default=None, metavar="N",
        help="stop watching after N cycles",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--mock", type=int, default=None, metavar="N", help="simulate N devices instead of NVML"
    )
    source.add_argument(
        "--replay", default=None, metavar="FILE", help="replay a capture made with --json --watch"
    )
    parser.add_argument("--loop", action="store_true", help="loop the replay capture")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("processes", help="show GPU processes only")
    return parser


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[handler],
        force=True,
    )


def _config_from_args(args: argparse.Namespace) -> MonitorConfig:
    """Start from the ``GPUWATCH_*`` environment; flags win over it."""
    overrides: dict[str, object] = {}
    if args.interval is not None:
        overrides["interval_ms"] = args.interval
    if args.mock is not None:
        overrides.update(provider="mock", mock_devices=args.mock)
    elif args.replay is not None:
        overrides.update(provider="replay", replay_path=args.replay, replay_loop=args.loop)
    elif args.loop:
        overrides["replay_loop"] = True
    return dataclasses.replace(MonitorConfig.from_env(), **overrides)  # type: ignore[arg-type]


def _acquire_once(monitor: Monitor, err: Console) -> MonitorState | None:
    state = monitor.refresh()
    monitor.stop()
    if state.mode is ViewMode.ERROR:
        err.print(f"[red]Error:[/red] {escape(state.error or '')}")
        if monitor.config.provider == "nvml":
            err.print("Make sure NVIDIA drivers are installed and you have an NVIDIA GPU.")
        return None
    return state


def _print_once(monitor: Monitor, args: argparse.Namespace, out: Console, err: Console) -> int:
    state = _acquire_once(monitor, err)
    if state is None:
        return 1
    if args.json:
        sys.stdout.write(devices_json(state.devices) + "\n")
    elif state.devices:
        out.print(devices_panels(state.devices))
    else:
        out.print("[yellow]No GPU devices reported.[/yellow]")
    return 0


def _print_processes(monitor: Monitor, args: argparse.Namespace, out: Console, err: Console) -> int:
    state = _acquire_once(monitor, err)
    if state is None:
        return 1
    entries = state.directory.entries(args.filter)
    if args.json:
        sys.stdout.write(processes_json(entries) + "\n")
    else:
        out.print(all_processes_table(entries))
    return 0


def _watch(
    monitor: Monitor, count: int | None, on_state: Callable[[MonitorState], None]
) -> None:
    """Run *monitor* until interrupted or until *count* cycles were published."""
    done = threading.Event()

    def handle(state: MonitorState) -> None:
        if count is not None and state.cycle > count:
            return
        on_state(state)
        if count is not None and state.cycle >= count:
            done.set()

    unsubscribe = monitor.subscribe(handle)
    monitor.start()
    try:
        while not done.wait(timeout=0.25):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()
        unsubscribe()


def _json_watch(monitor: Monitor, args: argparse.Namespace) -> int:
    def emit(state: MonitorState) -> None:
        if state.mode is ViewMode.ERROR:
            logger.warning("Acquisition failed: %s", state.error)
            return
        sys.stdout.write(devices_json(state.devices, pretty=False) + "\n")
        sys.stdout.flush()

    _watch(monitor, args.count, emit)
    return 0


def _run_dashboard(monitor: Monitor, args: argparse.Namespace, out: Console) -> int:
    term = args.filter
    with Live(
        dashboard(monitor.state, monitor.history, term=term),
        console=out,
        refresh_per_second=4,
        transient=False,
    ) as live:
        _watch(
            monitor,
            args.count,
            lambda state: live.update(dashboard(state, monitor.history, term=term)),
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = _config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    out = Console()
    err = Console(stderr=True)
    try:
        monitor = Monitor(config=config)
    except ProviderError as exc:
        err.print(f"[red]Error:[/red] {escape(str(exc))}")
        return 1

    if args.command == "processes":
        return _print_processes(monitor, args, out, err)
    if args.once or (args.json and not args.watch):
        return _print_once(monitor, args, out, err)
    if args.json:
        return _json_watch(monitor, args)
    return _run_dashboard(monitor, args, out)


if __name__ == "__main__":
    sys.exit(main())
