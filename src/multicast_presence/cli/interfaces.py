"""CLI: mcast interfaces"""

import json

import click
from rich.console import Console
from rich.table import Table

from multicast_presence.transport.interfaces import list_interfaces

console = Console()


@click.command("interfaces")
@click.option("--json-output", "--json", is_flag=True)
def interfaces(json_output: bool):
    """List local interfaces usable with --interface."""
    rows = list_interfaces()
    if json_output:
        click.echo(json.dumps(rows, indent=2))
        return
    table = Table(title=f"Interfaces ({len(rows)})")
    table.add_column("Name", style="bold")
    table.add_column("Index", justify="right")
    table.add_column("Up")
    table.add_column("IPv4")
    table.add_column("IPv6")
    for row in rows:
        table.add_row(
            row["name"],
            str(row["index"]),
            "[green]yes[/green]" if row["is_up"] else "[red]no[/red]",
            ", ".join(row["ipv4"]),
            ", ".join(row["ipv6"]),
        )
    console.print(table)
