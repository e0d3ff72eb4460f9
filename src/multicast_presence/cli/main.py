"""
Multicast presence CLI — `mcast` command.

Commands:
  mcast run              Join a group, broadcast a message, show peers
  mcast interfaces       List local network interfaces
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install multicast-presence[cli]")

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log socket traffic and lifecycle.")
def main(verbose: bool):
    """Multicast presence — announce yourself on a multicast group and see who else is there."""
    _setup_logging(verbose)


# Register subcommands from separate modules
from multicast_presence.cli.interfaces import interfaces
from multicast_presence.cli.run import run_cmd

main.add_command(interfaces)
main.add_command(run_cmd)


if __name__ == "__main__":
    main()
