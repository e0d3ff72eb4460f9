"""CLI: mcast run"""

import asyncio
import json
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from multicast_presence.errors import MulticastError
from multicast_presence.models.config import DEFAULT_ADDRESS, DEFAULT_MESSAGE, DEFAULT_PORT, EngineSettings
from multicast_presence.models.device import DeviceInfo, Staleness
from multicast_presence.models.events import EngineEvent, InboundMessage
from multicast_presence.session import AsyncMulticastSession

console = Console()

STALENESS_STYLE = {
    Staleness.FRESH: "green",
    Staleness.ACTIVE: "cyan",
    Staleness.WARNING: "yellow",
    Staleness.STALE: "red",
}


def _run(coro):
    from multicast_presence.cli.main import _run
    return _run(coro)


def _print_event(event: str, data: Any) -> None:
    if event == EngineEvent.MESSAGE and isinstance(data, InboundMessage):
        console.print(f"[green]{data.sender_id[:8]}[/green] [dim]{data.msg_type}[/dim] {escape(data.text)}")
    elif event == EngineEvent.STATUS:
        console.print(f"[dim]{escape(f'[status: {data}]')}[/dim]")
    elif event == EngineEvent.ERROR:
        console.print(f"[red]{escape(str(data))}[/red]")
    elif event == EngineEvent.SENT:
        console.print(f"[dim]sent #{data}[/dim]")


def _echo_event(event: str, data: Any) -> None:
    if isinstance(data, InboundMessage):
        data = data.model_dump()
    click.echo(json.dumps({"event": event, "data": data}))


def _print_devices(devices: list[DeviceInfo]) -> None:
    table = Table(title=f"Active devices ({len(devices)})")
    table.add_column("Peer", style="bold")
    table.add_column("Last message")
    table.add_column("Count", justify="right")
    table.add_column("Seen", justify="right")
    for dev in devices:
        style = STALENESS_STYLE[dev.staleness]
        table.add_row(
            dev.peer_id,
            escape(dev.last_message),
            str(dev.message_count),
            f"[{style}]{dev.seconds_since_seen:.0f}s ago[/{style}]",
        )
    console.print(table)


@click.command("run")
@click.option("--ip", "address", default=DEFAULT_ADDRESS, envvar="MCAST_ADDRESS", show_default=True,
              help="Multicast group; an address with ':' selects IPv6.")
@click.option("-p", "--port", default=DEFAULT_PORT, type=int, envvar="MCAST_PORT", show_default=True)
@click.option("-m", "--message", default=DEFAULT_MESSAGE, envvar="MCAST_MESSAGE", show_default=True)
@click.option("-i", "--interface", default=None, envvar="MCAST_INTERFACE",
              help="Interface name; the platform default when omitted.")
@click.option("--period", default=3.0, type=click.FloatRange(min=0, min_open=True), show_default=True,
              help="Seconds between broadcasts.")
@click.option("--duration", default=None, type=float, help="Stop after this many seconds.")
@click.option("--devices-every", default=5.0, type=click.FloatRange(min=0, min_open=True), show_default=True,
              help="Seconds between device table refreshes.")
@click.option("--json-output", "--json", is_flag=True)
def run_cmd(address: str, port: int, message: str, interface: Optional[str], period: float,
            duration: Optional[float], devices_every: float, json_output: bool):
    """Join a multicast group, broadcast a message and show peers."""

    async def _session():
        session = AsyncMulticastSession(settings=EngineSettings(broadcast_period=period))
        session.add_event_handler(_echo_event if json_output else _print_event)
        try:
            instance_id = await session.start(address, port, message, interface)
        except MulticastError:
            raise SystemExit(1)  # already reported through the error event
        if not json_output:
            console.print(f"[cyan]Instance {instance_id} on {address}:{port} (Ctrl+C to exit)[/cyan]")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration if duration is not None else None
        try:
            while deadline is None or loop.time() < deadline:
                wait = devices_every if deadline is None else min(devices_every, deadline - loop.time())
                await asyncio.sleep(max(wait, 0))
                if not json_output:
                    _print_devices(session.get_active_devices())
        finally:
            await session.stop()

    try:
        _run(_session())
    except KeyboardInterrupt:
        pass
