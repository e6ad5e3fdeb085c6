"""
DeployHQ commands.
"""

import typer

from cli.output import command_errors, connect, console, fail
from team51.clients.base import APIError
from team51.clients.deployhq_client import DeployHQClient
from team51.config import get_settings, validate_settings

app = typer.Typer(help="📦 DeployHQ project management", add_completion=False)


@app.command("rotate-private-key")
def rotate_private_key():
    """
    Install the configured SSH private key on every DeployHQ project.

    Projects without a linked repository are skipped. A project counts as
    rotated once DeployHQ reports the configured public key.
    """
    settings = get_settings()
    with command_errors("Invalid configuration"):
        validate_settings(settings, ["deployhq_private_key", "deployhq_public_key"])

    deployhq = connect(DeployHQClient)
    with command_errors("Failed to list the DeployHQ projects"):
        projects = deployhq.list_projects()

    failures = 0
    for project in projects:
        console.print(f"{project.permalink}: Starting key rotation.")
        if project.repository is None or not project.repository.url:
            console.print(f"{project.permalink}: [dim]Skipped. No linked repo.[/dim]")
            continue

        try:
            updated = deployhq.update_project(project.permalink, {"custom_private_key": settings.deployhq_private_key})
        except APIError as e:
            updated = None
            console.print(f"❌ [red]{project.permalink}: {e}[/red]")

        if updated is None or not updated.public_key or settings.deployhq_public_key.strip() not in updated.public_key:
            failures += 1
            console.print(f"❌ [red]{project.permalink}: Failed to rotate private key.[/red]")
            continue
        console.print(f"✅ [green]{project.permalink}: Done![/green]")

    if failures:
        fail(f"{failures} of {len(projects)} projects could not be rotated.")
