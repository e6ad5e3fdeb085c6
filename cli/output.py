"""
Console helpers shared by the command modules.
"""

from contextlib import contextmanager
from typing import Iterable, Optional, Sequence

import httpx
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from team51.clients.base import APIError
from team51.clients.onepassword import OnePasswordError
from team51.connections import ConnectionHelperError

console = Console()

EXIT_FAILURE = 1
EXIT_ABORTED = 2
COMMAND_ERRORS = (
    APIError,
    httpx.HTTPError,
    OnePasswordError,
    ConnectionHelperError,
    ValueError,
    TimeoutError,
    RuntimeError,
    OSError,
)


def make_table(title: Optional[str], columns: Sequence[str], rows: Iterable[Sequence] = ()) -> Table:
    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
    )
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[str(value) if value is not None else "--" for value in row])
    return table


def fail(message: str):
    console.print(f"❌ [red]{message}[/red]")
    raise typer.Exit(EXIT_FAILURE)


def confirm_or_abort(question: str, assume_yes: bool = False):
    """Ask for confirmation; a "no" ends the command with exit code 2."""
    if assume_yes:
        return
    if not typer.confirm(question, default=False):
        console.print("[yellow]Command aborted by user.[/yellow]")
        raise typer.Exit(EXIT_ABORTED)


@contextmanager
def command_errors(action: str):
    """
    Turn the errors a command can't recover from into a red line and exit 1.

    Example:
        with command_errors("Failed to fetch sites"):
            sites = pressable.list_sites()
    """
    try:
        yield
    except (typer.Exit, typer.Abort):
        # click's exit signals subclass RuntimeError
        raise
    except COMMAND_ERRORS as e:
        fail(f"{action}: {e}")


@contextmanager
def site_errors(action: str):
    """
    Report a failure on one site and carry on with the next one.

    Example:
        for site in sites:
            with site_errors(f"Failed to update {site.url}"):
                update(site)
    """
    try:
        yield
    except (typer.Exit, typer.Abort):
        raise
    except COMMAND_ERRORS as e:
        console.print(f"❌ [red]{action}: {e}[/red]")


def connect(client_cls, **kwargs):
    """Build an API client, reporting missing credentials as a command failure."""
    with command_errors(f"{client_cls.__name__} is not configured"):
        return client_cls(**kwargs)
