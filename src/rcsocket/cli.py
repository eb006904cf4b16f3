"""CLI for the reconnecting socket.

This module provides a command-line interface for opening a resilient
connection, running the controllable echo service, and inspecting the
reconnect backoff schedule.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from rcsocket.backoff import compute_retry_delay
from rcsocket.config import RcSocketConfig, read_config_file
from rcsocket.constants import DEFAULT_MAX_RETRY_DELAY, DEFAULT_RETRY_BASE_DELAY
from rcsocket.exceptions import RcSocketError
from rcsocket.transport import validate_url

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Set up logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Reconnecting WebSocket client tools."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


# =============================================================================
# Connection Commands
# =============================================================================


def _build_config(
    config_path: Optional[Path],
    overrides: dict[str, Any],
) -> tuple[RcSocketConfig, dict[str, Any]]:
    data: dict[str, Any] = {}
    if config_path:
        data = read_config_file(config_path)

    # url and protocols live next to the connection settings in the file
    extras = {key: data.pop(key) for key in ("url", "protocols") if key in data}
    data.update({key: value for key, value in overrides.items() if value is not None})
    return RcSocketConfig.from_dict(data), extras


@cli.command()
@click.argument("url", required=False, envvar="RCSOCKET_URL")
@click.option("-p", "--protocol", "protocols", multiple=True, help="Subprotocol to request")
@click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="YAML configuration file",
)
@click.option("--timeout", type=float, help="Connect timeout in seconds")
@click.option("--max-retry-delay", type=float, help="Reconnect delay cap in seconds")
@click.option("--flush-delay", type=float, help="Queue flush spacing in seconds")
@click.option("--debug", is_flag=True, help="Log every dispatched event")
@click.pass_context
def connect(
    ctx: click.Context,
    url: Optional[str],
    protocols: tuple[str, ...],
    config_path: Optional[Path],
    timeout: Optional[float],
    max_retry_delay: Optional[float],
    flush_delay: Optional[float],
    debug: bool,
) -> None:
    """Open a resilient connection and relay stdin lines to it.

    Every event the connection dispatches is printed. End input (Ctrl-D)
    to close the connection.
    """
    from rcsocket.connection import RcSocket

    try:
        config, extras = _build_config(
            config_path,
            {
                "connect_timeout": timeout,
                "max_retry_delay": max_retry_delay,
                "queue_flush_delay": flush_delay,
                "debug": debug or None,
            },
        )
    except RcSocketError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    url = url or extras.get("url")
    if not url:
        console.print("[red]Error:[/red] No URL given")
        console.print("Pass URL as argument or set RCSOCKET_URL environment variable")
        sys.exit(1)

    try:
        validate_url(url)
    except RcSocketError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    requested = list(protocols) or list(extras.get("protocols") or [])

    console.print("[bold]Opening reconnecting socket[/bold]")
    console.print(f"URL: {url}")
    console.print()

    async def run() -> None:
        sock = RcSocket(url, requested, config)

        sock.on_connecting = lambda e: console.print(
            f"[cyan]connecting[/cyan] (attempt {e.attempt})"
        )
        sock.on_open = lambda e: console.print("[green]open[/green]")
        sock.on_message = lambda e: console.print(f"[bold]<[/bold] {escape(str(e.data))}")
        sock.on_error = lambda e: console.print(f"[red]error[/red] {e.error}")
        sock.on_timeout = lambda e: console.print(
            f"[yellow]timeout[/yellow] after {e.timeout}s"
        )
        sock.on_close = lambda e: console.print(
            f"[yellow]close[/yellow] code={e.code} kind={e.kind.value}"
        )

        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            sock.send(line.rstrip("\n"))

        sock.close()
        await sock.wait_closed()

    asyncio.run(run())


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=8765, type=int, help="Echo service port")
@click.option("--control-port", default=8766, type=int, help="Control endpoint port")
def serve(host: str, port: int, control_port: int) -> None:
    """Run the echo service and its HTTP control endpoint.

    GET /start, /stop, /sever and /status on the control port drive the
    echo service.
    """
    from rcsocket.control import ControlServer, EchoServer

    async def run() -> None:
        echo = EchoServer(host, port)
        control = ControlServer(echo, host, control_port)
        await echo.start()
        await control.start()

        console.print(f"Echo service: [cyan]{echo.url}[/cyan]")
        console.print(f"Control endpoint: [cyan]{control.url}[/cyan]")

        try:
            await asyncio.Future()
        finally:
            await control.stop()
            await echo.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("Stopped")


@cli.command()
@click.option("-n", "--attempts", default=8, type=click.IntRange(min=1), help="Attempts to show")
@click.option(
    "--max-retry-delay",
    default=DEFAULT_MAX_RETRY_DELAY,
    type=float,
    show_default=True,
    help="Reconnect delay cap in seconds",
)
@click.option(
    "--base",
    default=DEFAULT_RETRY_BASE_DELAY,
    type=float,
    show_default=True,
    help="Delay unit in seconds",
)
def backoff(attempts: int, max_retry_delay: float, base: float) -> None:
    """Show the reconnect delay for each attempt."""
    table = Table(title="Reconnect Schedule")
    table.add_column("Attempt", style="cyan", justify="right")
    table.add_column("Delay (s)", justify="right")
    table.add_column("Capped")

    for attempt in range(1, attempts + 1):
        delay = compute_retry_delay(attempt, max_retry_delay, base)
        capped = delay >= max_retry_delay
        table.add_row(
            str(attempt),
            f"{delay:.3f}",
            "[yellow]yes[/yellow]" if capped else "no",
        )

    console.print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
