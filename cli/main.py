"""
team51 CLI

Command-line interface for the team's hosting operations: Pressable sites,
GitHub repositories, DeployHQ deployments, WordPress.com/Jetpack sites and
a few reporting tools.

Usage:
    team51 create-production-site --site-name my-site --repo-slug my-site
    team51 pressable rotate-site-wp-user-password example.com
    team51 -vv github rotate-secrets
"""

import logging
from typing import Optional

import typer

from cli.commands import deployhq, flickr, front, github, jetpack, pressable, reports, sites, stats, wpcom
from cli.output import console, fail
from team51 import __version__
from team51.config import get_settings, load_settings

# Create Typer app
app = typer.Typer(
    name="team51",
    help="🛠️  Team51 operations CLI",
    add_completion=False,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(quiet: bool, verbosity: int, dev_mode: bool = False):
    """
    Map the verbosity flags onto logging levels.

    -q shows errors only, -v info, -vv debug for team51, -vvv debug for
    every library (httpx and paramiko included).
    """
    if quiet:
        level = logging.ERROR
    elif verbosity >= 2 or dev_mode:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_level = logging.DEBUG if verbosity >= 3 else max(level, logging.WARNING)
    logging.basicConfig(level=root_level, format=LOG_FORMAT, force=True)
    logging.getLogger("team51").setLevel(level)
    logging.getLogger("cli").setLevel(level)


@app.callback()
def main(
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show errors"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More output (-v, -vv, -vvv)"),
    contractor: bool = typer.Option(False, "--contractor", "-c", help="Use the contractors config file"),
    config_dir: Optional[str] = typer.Option(
        None, "--config-dir", envvar="TEAM51_CONFIG_DIR", help="Directory holding config.json"
    ),
):
    """
    🛠️  Team51 operations CLI
    """
    # Logging first so config problems are reported
    configure_logging(quiet, verbose)
    try:
        settings = load_settings(config_dir, contractor=contractor)
    except ValueError as e:
        fail(str(e))

    if settings.is_dev_mode and not quiet and not verbose:
        configure_logging(quiet, verbose, dev_mode=True)


@app.command()
def version():
    """Show version information."""
    settings = get_settings()

    if settings.ascii_welcome_art:
        console.print(f"[bold cyan]{settings.ascii_welcome_art}[/bold cyan]", highlight=False)
    console.print("\n[bold cyan]Team51 CLI[/bold cyan]" + (" [yellow](dev)[/yellow]" if settings.is_dev_mode else ""))
    console.print(f"Version: [green]{__version__}[/green]")
    console.print(f"GitHub owner: [yellow]{settings.github_api_owner}[/yellow]")
    console.print()


# Top-level commands
app.command("create-production-site")(sites.create_production_site)
app.command("create-development-site")(sites.create_development_site)
app.command("create-repository")(sites.create_repository)
app.command("remove-user")(sites.remove_user)
app.command("site-list")(sites.site_list)
app.command("create-production-site-wpcom")(wpcom.create_production_site_wpcom)
app.command("onboard-collaborator")(github.onboard_collaborator)
app.command("rename-branches")(github.rename_branches)
app.command("update-plugin-all-sites")(pressable.update_plugin_all_sites)
app.command("verify-email-auth")(reports.verify_email_auth)
app.command("php-errors")(reports.php_errors)
app.command("plugin-list")(reports.plugin_list)
app.command("plugin-search")(reports.plugin_search)
app.command("plugin-summary")(reports.plugin_summary)
app.command("get-publicize-connections")(reports.get_publicize_connections)

# Command groups
app.add_typer(pressable.app, name="pressable")
app.add_typer(github.app, name="github")
app.add_typer(wpcom.app, name="wpcom")
app.add_typer(jetpack.app, name="jetpack")
app.add_typer(deployhq.app, name="deployhq")
app.add_typer(front.app, name="front")
app.add_typer(flickr.app, name="flickr")
app.add_typer(stats.app, name="stats")


if __name__ == "__main__":
    app()
