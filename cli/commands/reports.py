"""
Reports across the team's Jetpack connected sites: plugins, email
authentication, publicize connections and PHP fatal errors.
"""

import csv
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

import httpx
import typer
from rich.progress import track

from cli.commands.pressable import require_site
from cli.commands.wpcom import require_wpcom_site
from cli.output import command_errors, connect, console, fail, make_table, site_errors
from team51.clients.base import APIError
from team51.clients.pressable_client import PressableClient
from team51.clients.wpcom_client import WPCOMClient
from team51.connections import PressableConnection
from team51.email_auth import check_nameservers, find_smtp_plugin, is_ignored_domain
from team51.php_errors import DEFAULT_ERROR_LOG_PATH, fetch_error_log, parse_error_log, summarize_errors
from team51.pyd_models.wpcom_models import JetpackBlog
from team51.site_reports import (
    FULL_DUMP_DENY_LIST,
    PRODUCTION_DENY_LIST,
    PUBLICIZE_CONNECTIONS_FILE,
    filter_production_sites,
    plugin_list_rows,
    plugin_matches,
    plugin_status,
    plugin_summary_file_name,
)
from team51.utils import validate_enum

logger = logging.getLogger(__name__)

EMAIL_AUTH_CHECK_INTERVAL = 10
PHP_ERROR_FORMATS = ("raw", "table")
PUBLICIZE_SERVICE = "twitter"


def write_csv(path: Path, header: Sequence[str], rows: List[Sequence]):
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)


def list_production_blogs(wpcom: WPCOMClient, deny_list: Sequence[str] = PRODUCTION_DENY_LIST) -> List[JetpackBlog]:
    console.print("Fetching the production sites connected to the team account.")
    with command_errors("Failed to fetch sites"):
        blogs = filter_production_sites(wpcom.list_jetpack_sites(), deny_list)
    if not blogs:
        fail("Failed to fetch sites.")
    console.print(f"{len(blogs)} sites found.")
    return blogs


def check_email_auth(wpcom: WPCOMClient, domain: str, site_id: int):
    dns_records = wpcom.get_site_profile_dns(domain)
    if dns_records is None:
        console.print(f"❌ [red]Failed to fetch DNS info for {domain}[/red]")
        return

    console.print(f"[bold]{domain}:[/bold]")
    uses_automattic, nameserver = check_nameservers(dns_records)
    console.print(
        " - Using Automattic Nameservers: "
        + ("[green]Yes ✓[/green]" if uses_automattic else f"[red]No ({nameserver}) ✗[/red]")
    )

    plugins = wpcom.list_site_plugins(site_id)
    if plugins is None:
        console.print(" - SMTP Plugin Found: [red]Failed to fetch plugins![/red]")
        return
    smtp_plugin = find_smtp_plugin(plugins)
    console.print(
        " - SMTP Plugin Found: " + (f"[red]Yes ({smtp_plugin}) ✗[/red]" if smtp_plugin else "[green]No ✓[/green]")
    )


def verify_email_auth(
    site: Optional[str] = typer.Option(None, "--site", help="ID or domain of a single site to check"),
):
    """
    Check whether sites use Automattic's nameservers and whether an SMTP
    plugin is installed.

    Examples:
        team51 verify-email-auth
        team51 verify-email-auth --site example.com
    """
    wpcom = connect(WPCOMClient)

    if site:
        console.print(f"[bold magenta]Checking email authentication setup for site: `{site}`.[/bold magenta]")
        wpcom_site = require_wpcom_site(wpcom, site)
        with command_errors(f"Failed to check {site}"):
            check_email_auth(wpcom, httpx.URL(wpcom_site.url).host, wpcom_site.id)
        return

    console.print("[bold magenta]Checking email authentication setup for all team sites.[/bold magenta]")
    with command_errors("Failed to fetch sites"):
        blogs = wpcom.list_jetpack_sites()
    if not blogs:
        fail("Failed to fetch sites.")

    checked = set()
    for blog in blogs:
        if is_ignored_domain(blog.domain) or blog.domain in checked:
            continue
        with site_errors(f"Failed to check {blog.domain}"):
            check_email_auth(wpcom, blog.domain, blog.userblog_id)
        checked.add(blog.domain)
        console.print()
        # The site profiler rate limits back-to-back lookups.
        time.sleep(EMAIL_AUTH_CHECK_INTERVAL)


def php_errors(
    site: str = typer.Argument(..., help="ID or URL of the Pressable site"),
    output_format: Optional[str] = typer.Option(None, "--format", help="raw or table"),
    limit: int = typer.Option(3, "--limit", help="Number of distinct fatal errors to show"),
):
    """
    Show the most recent distinct PHP fatal errors of a Pressable site.

    Example:
        team51 php-errors example.com --format table --limit 10
    """
    with command_errors("Invalid input"):
        output_format = validate_enum(output_format, PHP_ERROR_FORMATS, "format")
    limit = max(1, limit)

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)
    console.print(
        f"[bold magenta]Retrieving the last {limit} distinct PHP fatal errors for {pressable_site.label} "
        f"(ID {pressable_site.id}).[/bold magenta]"
    )

    with command_errors(f"Failed to download the PHP error log for {pressable_site.label}"):
        with PressableConnection.for_site(pressable, pressable_site.id) as ssh:
            error_log = fetch_error_log(ssh, DEFAULT_ERROR_LOG_PATH)

    empty_message = f"The PHP error log for {pressable_site.label} appears to be empty. Go make some errors and try again!"
    if not error_log.strip():
        console.print(empty_message)
        return

    if output_format == "raw":
        console.print(error_log, end="", markup=False, highlight=False)
        return

    summaries = summarize_errors(parse_error_log(error_log, severity="Fatal error", max_age=None))[:limit]
    if not summaries:
        console.print(empty_message)
        return

    title = f"The {limit} most recent PHP Fatal Errors"
    if output_format == "table":
        rows = [(summary.timestamp, summary.severity, summary.count, summary.message) for summary in summaries]
        console.print(make_table(title, ["Timestamp", "Error Level", "Error Count", "Message"], rows))
        return

    console.print(f"\n-- {title} --\n")
    for summary in summaries:
        console.print(f"Timestamp: {summary.timestamp}")
        console.print(f"Error Level: {summary.severity}")
        console.print(f"Error Count: {summary.count}")
        console.print(f"[magenta]{summary.message}[/magenta]", highlight=False)
        console.print()


def plugin_list(site: str = typer.Argument(..., help="Domain or ID of a Jetpack connected site")):
    """
    List the plugins installed on a site.

    Example:
        team51 plugin-list example.com
    """
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    console.print(f"Plugins installed on {site}")
    with command_errors("Failed to fetch the plugins"):
        plugins = wpcom.list_site_plugins(wpcom_site.id)
    if plugins is None:
        fail(f"Failed to fetch the plugins of {site}. Is the Jetpack connection working?")

    console.print(make_table(None, ["Plugin slug", "Status", "Version"], plugin_list_rows(plugins)))


def plugin_search(
    plugin_slug: str = typer.Argument(..., help="Slug of the plugin to look for"),
    partial: bool = typer.Option(False, "--partial", help="Match part of the slug or name"),
):
    """
    Find the sites that have a plugin installed.

    Examples:
        team51 plugin-search woocommerce
        team51 plugin-search smtp --partial
    """
    wpcom = connect(WPCOMClient)

    console.print("Fetching list of sites...")
    with command_errors("Failed to fetch sites"):
        blogs = wpcom.list_jetpack_sites()
    if not blogs:
        fail("Failed to fetch sites.")
    console.print(f"{len(blogs)} sites found.")
    console.print(f"Checking each site for the plugin slug: {plugin_slug}")

    with_plugin, not_checked = [], []
    for blog in track(blogs, description="Checking sites", console=console):
        try:
            plugins = wpcom.list_site_plugins(blog.userblog_id)
        except (APIError, httpx.HTTPError) as e:
            logger.debug(f"Failed to fetch the plugins of {blog.domain}: {e}")
            plugins = None

        if plugins is None:
            not_checked.append((blog.domain, blog.userblog_id))
            continue
        with_plugin.extend(
            (blog.domain, plugin.name, plugin_status(plugin), plugin.version)
            for plugin in plugins
            if plugin_matches(plugin, plugin_slug, partial)
        )

    console.print(make_table(None, ["Site URL", "Plugin Name", "Plugin Status", "Plugin Version"], with_plugin))
    if not_checked:
        console.print("Ignored sites - either not a Jetpack connected site, or the connection is broken.")
        console.print(make_table("Sites not checked", ["Site URL", "Site ID"], not_checked))
    console.print("✅ [green]All done![/green]")


def plugin_summary(
    full: bool = typer.Option(False, "--full", help="Include versions and write a timestamped file"),
):
    """
    Export the plugins of every production site to a CSV file.

    Examples:
        team51 plugin-summary
        team51 plugin-summary --full
    """
    wpcom = connect(WPCOMClient)
    blogs = list_production_blogs(wpcom, FULL_DUMP_DENY_LIST if full else PRODUCTION_DENY_LIST)

    console.print("Getting plugins from each site...")
    with command_errors("Failed to fetch the plugins"):
        account_plugins = wpcom.list_account_plugins()

    rows = []
    for blog in blogs:
        for plugin in account_plugins.get(blog.userblog_id, []):
            row = [blog.siteurl, blog.userblog_id, plugin.slug, plugin.active]
            if full:
                row.append(plugin.version)
            rows.append(row)

    header = ["Site URL", "Blog ID", "Plugin Slug", "Active"] + (["Version"] if full else [])
    path = Path.cwd() / plugin_summary_file_name(full)
    with command_errors("Failed to write the CSV"):
        write_csv(path, header, rows)
    console.print(f"✅ [green]Done, CSV saved to {path}[/green]")


def get_publicize_connections():
    """
    Export the Twitter publicize connections of the production sites to a
    CSV file.
    """
    wpcom = connect(WPCOMClient)
    blogs = list_production_blogs(wpcom)

    rows = []
    for blog in track(blogs, description="Fetching publicize connections", console=console):
        with site_errors(f"Failed to fetch the connections of {blog.siteurl}"):
            connections = wpcom.list_publicize_connections(blog.userblog_id, PUBLICIZE_SERVICE)
            if connections:
                connection = connections[0]
                rows.append(
                    [
                        blog.siteurl,
                        blog.userblog_id,
                        connection.service,
                        connection.external_name,
                        connection.external_profile_url,
                        connection.issued,
                        connection.status,
                        connection.expires,
                    ]
                )

    header = ["Site URL", "Blog ID", "Service", "Account", "Profile URL", "Connected", "Status", "Expires"]
    path = Path.cwd() / PUBLICIZE_CONNECTIONS_FILE
    with command_errors("Failed to write the CSV"):
        write_csv(path, header, rows)
    console.print(f"✅ [green]Done, CSV saved to {path}[/green]")
