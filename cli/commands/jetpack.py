"""
Jetpack commands: modules, settings and site search by module status.
"""

import logging

import typer
from rich.progress import track

from cli.commands.wpcom import require_wpcom_site
from cli.output import command_errors, connect, console, fail, make_table
from team51.clients.base import APIError
from team51.clients.wpcom_client import WPCOMClient
from team51.utils import validate_enum

logger = logging.getLogger(__name__)

app = typer.Typer(help="🚀 Jetpack site management", add_completion=False)

SSO_SETTINGS = {"sso": True, "jetpack_sso_require_two_step": True}


@app.command("enable-sso")
def enable_sso(site: str = typer.Argument(..., help="Domain or ID of the Jetpack connected site")):
    """
    Turn on Jetpack SSO with two-step authentication required.

    Example:
        team51 jetpack enable-sso example.com
    """
    wpcom = connect(WPCOMClient)
    console.print("Fetching site information...")
    wpcom_site = require_wpcom_site(wpcom, site)

    console.print("Asking Jetpack to enable SSO...")
    with command_errors("Failed to enable SSO"):
        wpcom.update_jetpack_settings(wpcom_site.id, SSO_SETTINGS)
    console.print("✅ [green]All done![/green]")


@app.command("module")
def module(
    site: str = typer.Argument(..., help="Domain or ID of the Jetpack connected site"),
    module_slug: str = typer.Argument(..., metavar="MODULE", help="Jetpack module slug (e.g., photon)"),
    setting: str = typer.Argument(..., help="enable or disable"),
):
    """
    Enable or disable a Jetpack module.

    Example:
        team51 jetpack module example.com photon disable
    """
    with command_errors("Invalid input"):
        setting = validate_enum(setting.lower(), ("enable", "disable"), "setting")

    wpcom = connect(WPCOMClient)
    console.print("Fetching site information...")
    wpcom_site = require_wpcom_site(wpcom, site)

    console.print(f"Asking Jetpack to {setting} {module_slug}...")
    with command_errors(f"Failed to {setting} {module_slug}"):
        wpcom.set_jetpack_module(wpcom_site.id, module_slug, setting == "enable")
    console.print(f"✅ [green]Module {module_slug} {setting}d.[/green]")


@app.command("modules")
def modules(site: str = typer.Argument(..., help="Domain or ID of the Jetpack connected site")):
    """
    Show the status of every Jetpack module on a site.

    Example:
        team51 jetpack modules example.com
    """
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    with command_errors("Failed to fetch the Jetpack modules"):
        jetpack_modules = wpcom.list_jetpack_modules(wpcom_site.id)

    console.print(
        make_table(
            f"Jetpack module status for {site}",
            ["Module", "Status"],
            [(m.module, "[green]on[/green]" if m.activated else "[dim]off[/dim]") for m in jetpack_modules],
        )
    )


@app.command("namespace")
def namespace(site: str = typer.Argument(..., help="Domain or ID of the Jetpack connected site")):
    """Dump the site's Jetpack REST namespace (/jetpack/v4)."""
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    with command_errors("Failed to fetch the Jetpack namespace"):
        data = wpcom.get_jetpack_namespace(wpcom_site.id)
    console.print_json(data=data)


@app.command("sites-with")
def sites_with(
    module_slug: str = typer.Argument(..., metavar="MODULE", help="Jetpack module slug"),
    status: str = typer.Argument("on", help="on or off"),
):
    """
    List the Jetpack sites on which a module is on (or off).

    Every site is queried in turn, so this takes several minutes.

    Example:
        team51 jetpack sites-with photon off
    """
    module_slug = module_slug.lower()
    with command_errors("Invalid input"):
        status = validate_enum(status.lower(), ("on", "off"), "status")

    wpcom = connect(WPCOMClient)
    console.print("Fetching list of sites...")
    with command_errors("Failed to fetch sites"):
        sites = wpcom.list_jetpack_sites()
    console.print(f"{len(sites)} sites found. Checking each site for the Jetpack module: {module_slug}")

    matches = []
    not_checked = []
    for site in track(sites, description="Checking sites", console=console):
        try:
            jetpack_modules = wpcom.list_jetpack_modules(site.userblog_id)
        except APIError as e:
            logger.debug(f"Failed to check {site.siteurl}: {e}")
            not_checked.append(site)
            continue

        found = next((m for m in jetpack_modules if m.module == module_slug), None)
        if found is None:
            if jetpack_modules:
                console.print(make_table("Available slugs", ["Slug", "Name"], [(m.module, m.name) for m in jetpack_modules]))
                fail(f'Jetpack module slug "{module_slug}" unknown.')
            not_checked.append(site)
            continue

        if ("on" if found.activated else "off") == status:
            matches.append(site)

    console.print(
        make_table(
            f'Sites with the Jetpack module "{module_slug}" turned "{status}"',
            ["Site URL", "Site ID"],
            [(site.siteurl, site.userblog_id) for site in matches],
        )
    )
    if not_checked:
        console.print(
            make_table(
                "Sites not checked",
                ["Site URL", "Site ID"],
                [(site.siteurl, site.userblog_id) for site in not_checked],
            )
        )
