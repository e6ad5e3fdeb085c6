"""
Front commands: conversation exports.
"""

from datetime import datetime, timezone
from typing import Optional

import typer

from cli.output import command_errors, connect, console, make_table
from team51.clients.front_client import FrontClient
from team51.pyd_models.misc_models import FrontExport

app = typer.Typer(help="📨 Front exports", add_completion=False)

DEFAULT_START_DATE = "2015-01-01"


def parse_date(value: str, name: str) -> datetime:
    """Parse YYYY-MM-DD (or "now") as a UTC datetime."""
    if value.lower() == "now":
        return datetime.now(timezone.utc)
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise typer.BadParameter(f"Invalid {name} date {value}, use YYYY-MM-DD.")


def format_timestamp(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, timezone.utc).strftime("%Y-%m-%d %H:%M")


def export_row(export: FrontExport) -> tuple:
    progress = f"{export.progress:g}%" if export.progress is not None else None
    return export.id, format_timestamp(export.created_at), (export.status or "").capitalize(), progress, export.url


@app.command("create-export")
def create_export(
    start: str = typer.Option(DEFAULT_START_DATE, "--start", help="Start date (YYYY-MM-DD)"),
    end: str = typer.Option("now", "--end", help="End date (YYYY-MM-DD or 'now')"),
):
    """
    Ask Front to export every conversation between two dates.

    Example:
        team51 front create-export --start 2023-01-01 --end 2023-12-31
    """
    start_date = parse_date(start, "start")
    end_date = parse_date(end, "end")

    console.print("Asking Front to generate a new export...")
    with command_errors("Oh no, something went wrong"):
        export = connect(FrontClient).create_export(start_date, end_date)

    console.print(
        f"✅ [green]A new export request was created with the ID {export.id}. "
        f"Current status is {(export.status or 'unknown').capitalize()}.[/green]"
    )
    console.print("💡 [dim]Use `team51 front list-exports` to check on the export status and get a download link.[/dim]")


@app.command("get-export")
def get_export(export_id: str = typer.Argument(..., metavar="ID", help="The export ID")):
    """Show the status and download link of an export."""
    with command_errors("Oh no, something went wrong. Are you sure an export with this ID was requested?"):
        export = connect(FrontClient).get_export(export_id)

    console.print(make_table(None, ["ID", "Date", "Status", "Progress", "Download"], [export_row(export)]))


@app.command("list-exports")
def list_exports():
    """List the export requests and their download links."""
    with command_errors("Oh no, something went wrong"):
        exports = connect(FrontClient).list_exports()

    if not exports:
        console.print("📭 [yellow]No exports found. Use `team51 front create-export` to request one.[/yellow]")
        return
    console.print(make_table(None, ["ID", "Date", "Status", "Progress", "Download"], [export_row(e) for e in exports]))
