#!/usr/bin/env python3
"""
countsync CLI - count reconciliation against an unreliable remote store

Main entrypoint for the countsync command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from countsync.cli.commands import config, simulate

app = typer.Typer(
    name="countsync",
    help="Keep local event counts in sync with a rate-limited remote counter",
    add_completion=False,
)

console = Console()

app.command("simulate")(simulate.simulate_command)
app.command("config")(config.config_command)


@app.command()
def version():
    """Show version information."""
    from countsync import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]countsync[/bold]", f"v{__version__}")
    table.add_row("Engine", "single-flight, globally rate-limited")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
