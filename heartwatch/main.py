"""Entry point for heartwatch."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel

from heartwatch.config import settings
from heartwatch.monitoring.checkers import default_registry
from heartwatch.monitoring.errors import CheckError, ConfigurationError
from heartwatch.monitoring.models import Heartbeat, Monitor

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting heartwatch server", style="bold green"))
    uvicorn.run(
        "heartwatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_check(args: argparse.Namespace) -> int:
    """Run a single check and print the heartbeat it produced."""
    registry = default_registry(settings.tailscale_cli_path)
    monitor = Monitor(
        id=0,
        name=args.hostname or args.url,
        type=args.type,
        user_id=0,
        hostname=args.hostname,
        url=args.url,
        port=args.port,
        interval=args.interval,
    )
    heartbeat = Heartbeat(monitor_id=monitor.id)

    try:
        checker = registry.get(monitor.type)
    except ConfigurationError as e:
        console.print(f"[bold red]{e}[/bold red] (known: {', '.join(registry.types())})")
        return 2

    with console.status(f"[bold green]Checking {monitor.name}..."):
        try:
            checker.check(monitor, heartbeat)
        except CheckError as e:
            console.print(Panel(str(e), title=f"{monitor.type}: {type(e).__name__}", style="bold red"))
            return 1

    console.print(Panel(
        f"{heartbeat.msg}\n[dim]ping: {heartbeat.ping}ms[/dim]",
        title=f"{monitor.type}: {heartbeat.status.name}",
        style="bold green",
    ))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="heartwatch endpoint monitor")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server and scheduler")

    # One-off check
    check_parser = sub.add_parser("check", help="Run one check and print the result")
    check_parser.add_argument("type", help="Monitor type, e.g. tailscale-ping")
    check_parser.add_argument("hostname", nargs="?", default="", help="Target hostname")
    check_parser.add_argument("--url", default="", help="Target URL (http checks)")
    check_parser.add_argument("--port", type=int, default=None, help="Target port (tcp checks)")
    check_parser.add_argument("--interval", type=int, default=60, help="Interval in seconds; bounds the timeout")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_check(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
