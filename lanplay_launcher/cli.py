#!/usr/bin/env python3
"""
lan-play bridge launcher - local companion for the lan-play bridge web app.

Downloads lan-play if needed, keeps it connected to a relay, and serves a
loopback WebSocket on port 25190 so the web app can watch it. Exits by itself
once the browser stops sending heartbeats or nothing has happened for a while.
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import List, Optional

import requests
import websockets
from rich import box
from rich.panel import Panel
from rich.table import Table

from .binary import BinaryAcquirer, warn_if_npcap_missing
from .channel import ControlChannel
from .config import DEFAULT_PORT, RELEASES_URL, LauncherConfig, build_config
from .console import console, log
from .exceptions import ConfigError, DownloadError, PortInUseError
from .monitor import LifecycleMonitor
from .shutdown import ShutdownCoordinator
from .state import LauncherContext, ShutdownReason
from .supervisor import ProcessSupervisor

COMMANDS = ("run", "probe", "watch")

# ==================== Launcher ====================

def install_signal_handlers(coordinator: ShutdownCoordinator):
    """Route SIGINT/SIGTERM into the shutdown coordinator"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, coordinator.request, ShutdownReason.SIGNAL, sig.name)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            def handler(signum, frame):
                name = signal.Signals(signum).name
                loop.call_soon_threadsafe(coordinator.request, ShutdownReason.SIGNAL, name)
            signal.signal(sig, handler)


async def run_launcher(config: LauncherConfig, acquirer: Optional[BinaryAcquirer] = None) -> int:
    """Run every launcher component until shutdown; returns the exit status"""
    context = LauncherContext(config)

    # Step 1: make sure the binary exists
    try:
        await (acquirer or BinaryAcquirer()).ensure(config.binary_path, config.binary_url)
    except DownloadError as e:
        log(f"FATAL: {e}", "red")
        log("Please download lan-play manually from:")
        log(f"  {RELEASES_URL}")
        log(f"Place it in: {config.base_dir}")
        return 1

    # Step 2: Npcap on Windows
    warn_if_npcap_missing()

    # Step 3: control channel, so the web app can connect
    channel = ControlChannel(context)
    try:
        await channel.start()
    except PortInUseError:
        log(f"ERROR: Port {config.port} already in use. Is another launcher running?", "red")
        return 1
    except OSError as e:
        log(f"ERROR: Could not listen on port {config.port}: {e}", "red")
        return 1

    supervisor = ProcessSupervisor(context, on_change=channel.broadcast_status)
    coordinator = ShutdownCoordinator(context, channel, supervisor)
    monitor = LifecycleMonitor(context, on_trip=coordinator.shutdown)
    install_signal_handlers(coordinator)

    # Step 4: lan-play
    await supervisor.start()

    # Step 5: auto-shutdown monitor
    monitor_task = asyncio.create_task(monitor.run())
    try:
        await coordinator.finished.wait()
    finally:
        monitor_task.cancel()
        try:
            await monitor_task
        except asyncio.CancelledError:
            pass
        await channel.stop()
    return 0


def print_banner(config: LauncherConfig):
    info_lines = [
        f"[bold cyan]Platform:[/bold cyan] {config.platform}",
        f"[bold cyan]Relay:[/bold cyan]    {config.relay}",
        f"[bold cyan]Port:[/bold cyan]     {config.port}",
        f"[bold cyan]Binary:[/bold cyan]   {config.binary_path}",
    ]
    console.print(Panel(
        "\n".join(info_lines),
        title=f"[bold green]lan-play-bridge-launcher v{config.version}[/bold green]",
        border_style="green",
        padding=(1, 2),
    ))
    console.print("[dim]Press Ctrl+C to stop[/dim]")


# ==================== Diagnostics ====================

def probe(port: int) -> dict:
    """Query a running launcher's /health endpoint and print it"""
    try:
        with console.status("[bold green]Probing launcher...", spinner="dots"):
            r = requests.get(f"http://127.0.0.1:{port}/health", timeout=5)
            r.raise_for_status()
            status = r.json()
    except requests.exceptions.RequestException as e:
        console.print(f"[red]No launcher answering on port {port}: {e}[/red]")
        sys.exit(1)

    table = Table(box=box.SIMPLE, show_header=False, pad_edge=False, padding=(0, 1))
    table.add_column("", style="dim", no_wrap=True, width=12)
    table.add_column("", style="")
    running = "[green]Running[/green]" if status.get("running") else "[red]Stopped[/red]"
    table.add_row("lan-play:", running)
    table.add_row("Relay:", str(status.get("relay", "N/A")))
    table.add_row("Platform:", str(status.get("platform", "N/A")))
    table.add_row("Version:", str(status.get("version", "N/A")))
    console.print(table)
    return status


async def watch(port: int, interval: float = 10.0) -> List[dict]:
    """Act like the web app: heartbeat the launcher and print what it sends"""
    uri = f"ws://127.0.0.1:{port}"
    received = []

    async with websockets.connect(uri) as websocket:
        console.print(f"[green]Connected to[/green] [bold]{uri}[/bold]")

        async def send_heartbeats():
            while True:
                await websocket.send(json.dumps({"type": "heartbeat"}))
                await asyncio.sleep(interval)

        heartbeat_task = asyncio.create_task(send_heartbeats())
        try:
            async for raw in websocket:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    continue
                received.append(msg)
                msg_type = msg.get("type")
                if msg_type == "status":
                    data = msg.get("data", {})
                    state = "[green]running[/green]" if data.get("running") else "[red]stopped[/red]"
                    log(f"status: lan-play {state} (relay {data.get('relay')})")
                elif msg_type == "heartbeat-ack":
                    log("[dim]heartbeat acknowledged[/dim]")
                elif msg_type == "shutdown":
                    log(f"launcher shutting down: {msg.get('reason')}", "yellow")
                    break
        except websockets.exceptions.ConnectionClosed as e:
            console.print(f"[yellow]Connection closed: {e}[/yellow]")
        finally:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except (asyncio.CancelledError, websockets.exceptions.ConnectionClosed):
                pass
    return received


# ==================== Main CLI ====================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lanplay-launcher",
        description="lan-play bridge launcher - runs lan-play for the web app and stops when you are done",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lanplay-launcher --relay relay.example.com:11451          # Run with a relay
  lanplay-launcher run --relay relay.example.com:11451 --bin-dir ~/lan-play
  lanplay-launcher probe                                   # Query a running launcher
  lanplay-launcher watch                                   # Heartbeat it from the terminal
        """,
        add_help=False,
    )
    parser.add_argument("-h", "--help", action="help", default=argparse.SUPPRESS,
                        help="Show this help message and exit")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Start lan-play and the control channel (default)")
    run_parser.add_argument("--relay", help="Relay server address, e.g. relay.example.com:11451")
    run_parser.add_argument("--port", type=int, help=f"Control channel port (default: {DEFAULT_PORT})")
    run_parser.add_argument("--bin-dir", help="Directory holding the lan-play binary")
    run_parser.add_argument("--config", help="Baked config JSON file (default: launcher_config.json in the binary directory)")

    probe_parser = subparsers.add_parser("probe", help="Query a running launcher's /health endpoint")
    probe_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Control channel port")

    watch_parser = subparsers.add_parser("watch", help="Connect like the web app and print messages")
    watch_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Control channel port")
    watch_parser.add_argument("--interval", type=float, default=10.0, help="Seconds between heartbeats")

    return parser


def main(argv: Optional[List[str]] = None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS + ("-h", "--help"):
        argv.insert(0, "run")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "probe":
        probe(args.port)
        return

    if args.command == "watch":
        try:
            asyncio.run(watch(args.port, args.interval))
        except OSError as e:
            console.print(f"[red]Could not connect to launcher on port {args.port}: {e}[/red]")
            sys.exit(1)
        except KeyboardInterrupt:
            pass
        return

    try:
        config = build_config(
            relay=args.relay,
            port=args.port,
            base_dir=args.bin_dir,
            config_path=args.config,
        )
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Usage: lanplay-launcher --relay yourserver.example.com:11451[/yellow]")
        console.print("[dim]Or bake it into launcher_config.json next to the launcher[/dim]")
        sys.exit(1)

    print_banner(config)
    try:
        code = asyncio.run(run_launcher(config))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
