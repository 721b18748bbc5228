"""
Config command: show the effective scheduler configuration
"""

import json

import typer
from rich.console import Console
from rich.table import Table

from countsync.core.errors import ConfigError
from countsync.sync import SyncConfig

console = Console()


def config_command(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show configuration resolved from COUNTSYNC_* environment variables.

    Examples:
        countsync config
        COUNTSYNC_MAX_ATTEMPTS=20 countsync config --json
    """
    try:
        config = SyncConfig.from_env()
    except ConfigError as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(2)

    values = config.to_dict()
    if json_output:
        print(json.dumps(values, indent=2))
        raise typer.Exit(0)

    table = Table(title="Sync configuration")
    table.add_column("Setting", style="green")
    table.add_column("Value", style="cyan", justify="right")
    for key, value in values.items():
        table.add_row(key, "unbounded" if value is None else str(value))
    console.print(table)
    raise typer.Exit(0)
