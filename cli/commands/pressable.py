"""
Pressable commands: password rotation, domains, collaborators, WP-CLI access.
"""

import io
import json
import logging
import subprocess
from datetime import date
from pathlib import Path
from typing import List, Optional

import httpx
import typer
from rich.panel import Panel
from rich.progress import track

from cli.output import command_errors, connect, confirm_or_abort, console, fail, make_table, site_errors
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.base import APIError
from team51.clients.onepassword import OnePasswordCLI, OnePasswordError, is_item_url_match
from team51.clients.pressable_client import PressableClient
from team51.clients.wpcom_client import WPCOMClient
from team51.config import get_settings
from team51.connections import PRESSABLE_SSH_HOST, ConnectionHelperError, PressableConnection
from team51.php_errors import (
    DEFAULT_ERROR_LOG_PATH,
    SEVERITIES,
    PHPError,
    errors_from_log_entries,
    fetch_error_log,
    find_error_log_path,
    parse_error_log,
    summarize_errors,
)
from team51.pressable_sites import (
    build_related_sites_tree,
    default_collaborator_roles,
    find_production_site,
    flatten_tree,
    render_sites_tree,
    resolve_site,
)
from team51.pyd_models.pressable_models import PressableSFTPUser, PressableSite
from team51.rotation import CONCIERGE_EMAIL, SFTPPasswordRotator, WPPasswordRotator
from team51.utils import is_case_insensitive_match, normalize_domain_input, validate_email, validate_enum

logger = logging.getLogger(__name__)

app = typer.Typer(help="🏠 Pressable site management", add_completion=False)

GRANT_ACCESS_ROLES = ["clone_site", "sftp_access", "download_backups", "reset_collaborator_password", "wp_access"]
DB_BACKUP_EXCLUDED_TABLES = (
    "wp_users",
    "woocommerce_order_itemmeta",
    "woocommerce_order_items",
    "wc_orders",
    "wc_order_addresses",
    "wc_order_operational_data",
    "wc_orders_meta",
    "wpml_mails",
)
SITE_ICON_FILE = "apple-touch-icon.png"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
TEAM_ONEPASSWORD_ACCOUNT = "ZVYA3AB22BC37JPJZJNSGOPYEQ"
MAX_SITE_SUGGESTIONS = 5
AUTOUPDATE_FILTER_PLUGIN = "plugin-autoupdate-filter"
AUTOUPDATE_FILTER_ZIP = (
    "https://github.com/a8cteam51/plugin-autoupdate-filter/releases/latest/download/plugin-autoupdate-filter.zip"
)


def require_site(client: PressableClient, value: str) -> PressableSite:
    with command_errors("Failed to look up the Pressable site"):
        site = resolve_site(client, value)
        suggestions = client.search_sites(value.strip()) if site is None and not value.strip().isdigit() else []
    if site is None:
        if suggestions:
            console.print("Did you mean one of these sites?")
            for suggestion in suggestions[:MAX_SITE_SUGGESTIONS]:
                console.print(f"  • {suggestion.label}")
        fail(f"Pressable site {value} not found.")
    return site


def wp_cli_command(words: List[str]) -> str:
    """Join the command words, dropping a leading 'wp'."""
    wp_command = " ".join(words).strip()
    if wp_command == "wp" or wp_command.startswith("wp "):
        wp_command = wp_command[2:].strip()
    if not wp_command:
        fail("No WP-CLI command given.")
    return wp_command


def require_email(value: Optional[str]) -> str:
    email = value or CONCIERGE_EMAIL
    if not validate_email(email):
        fail(f"Invalid email provided: {email}")
    return email


def find_sftp_user(client: PressableClient, site_id: int, value: str) -> Optional[PressableSFTPUser]:
    """SFTP users can be given by ID, username or email."""
    if value.isdigit():
        return client.get_sftp_user_by_id(site_id, int(value))
    return client.get_sftp_user_by_username(site_id, value) or client.get_sftp_user_by_email(site_id, value)


def lookup_sftp_user(pressable: PressableClient, site: PressableSite, email: str) -> Optional[PressableSFTPUser]:
    """SFTP user lookup for multi-site loops; failures are reported and give None."""
    with site_errors(f"Failed to look up the SFTP users of {site.label}"):
        return pressable.get_sftp_user_by_email(site.id, email)
    return None


def prompt_deployhq_permalink(site: PressableSite) -> Optional[str]:
    return typer.prompt(f"Enter the DeployHQ project permalink for {site.name}", default="", show_default=False) or None


def rotate_wp_password(
    pressable: PressableClient,
    site: PressableSite,
    email: str,
    force: bool = False,
    dry_run: bool = False,
) -> bool:
    """Rotate the WP password on a site's whole clone tree and print the outcome."""
    production_site = find_production_site(pressable, site)
    if production_site.id != site.id:
        console.print(f"[yellow]{site.label} is a clone, rotating from its production site {production_site.label}.[/yellow]")

    rotator = WPPasswordRotator(
        pressable,
        connect(WPCOMClient),
        connect(OnePasswordCLI),
        email,
        force=force,
        dry_run=dry_run,
        console=console,
    )
    console.print(
        f"[bold magenta]Rotating the WP user password of {email} on {production_site.label} "
        f"and all of its development clones.[/bold magenta]"
    )
    report = rotator.rotate_tree(production_site)
    console.print(render_sites_tree(report.tree, include_passwords=True))
    return report.success


@app.command("rotate-site-passwords")
def rotate_site_passwords(
    site: Optional[str] = typer.Argument(None, help="ID or URL of the site"),
    all_sites: bool = typer.Option(False, "--all", help="Rotate on every site (forces the concierge user)"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Email of the user (default: concierge)"),
    force: bool = typer.Option(False, "--force", help="Reset via Pressable even when passwords diverge"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """
    Rotate the SFTP and WP user passwords on one or all Pressable sites.

    Examples:
        team51 pressable rotate-site-passwords example.com
        team51 pressable rotate-site-passwords --all --dry-run
    """
    email = CONCIERGE_EMAIL if all_sites else require_email(user)
    pressable = connect(PressableClient)

    if all_sites:
        with command_errors("Failed to fetch Pressable sites"):
            sites = pressable.list_sites()
        confirm_or_abort(f"Rotate the passwords for {email} on ALL sites?", yes)
    else:
        if not site:
            fail("Provide a site or use --all.")
        sites = [require_site(pressable, site)]
        confirm_or_abort(f"Rotate the passwords for {email} on {sites[0].label}?", yes)

    console.print(f"[bold magenta]Rotating passwords for {email}.[/bold magenta]")
    sftp_rotator = SFTPPasswordRotator(pressable, connect(DeployHQClient), dry_run=dry_run, console=console)

    # A failure on one site is reported and the next site is still rotated.
    guard = site_errors if all_sites else command_errors
    for pressable_site in sites:
        console.print(f"[bold magenta]Rotating passwords on {pressable_site.label}.[/bold magenta]")

        console.print("----- SFTP Password")
        with guard(f"Failed to rotate the SFTP password on {pressable_site.label}"):
            sftp_user = pressable.get_sftp_user_by_email(pressable_site.id, email)
            if sftp_user is None:
                console.print(f"❌ [red]The SFTP user {email} does not exist on {pressable_site.label}.[/red]")
            else:
                sftp_rotator.rotate(pressable_site, sftp_user)

        # Rotating from a production site covers all of its clones.
        if not pressable_site.cloned_from_id or not all_sites:
            console.print("----- WP User Password")
            with guard(f"Failed to rotate the WP password on {pressable_site.label}"):
                rotate_wp_password(pressable, pressable_site, email, force=force, dry_run=dry_run)

        console.print(f"==================== END {pressable_site.label}")


@app.command("rotate-site-sftp-user-password")
def rotate_site_sftp_user_password(
    site: Optional[str] = typer.Argument(None, help="ID or URL of the site"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="ID, username or email of the SFTP user"),
    multiple: Optional[str] = typer.Option(None, "--multiple", help="Also rotate on 'related' sites or on 'all' sites"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """
    Rotate an SFTP user's password, updating DeployHQ for site owners.

    Examples:
        team51 pressable rotate-site-sftp-user-password example.com
        team51 pressable rotate-site-sftp-user-password example.com --multiple related
        team51 pressable rotate-site-sftp-user-password --multiple all --user concierge@wordpress.com
    """
    with command_errors("Invalid input"):
        multiple = validate_enum(multiple, ("all", "related"), "multiple")

    pressable = connect(PressableClient)

    if multiple == "all":
        email = require_email(user)
        with command_errors("Failed to fetch Pressable sites"):
            sites = pressable.list_sites()
    else:
        if not site:
            fail("Provide a site or use --multiple all.")
        pressable_site = require_site(pressable, site)
        with command_errors("Failed to look up the SFTP user"):
            sftp_user = find_sftp_user(pressable, pressable_site.id, user or CONCIERGE_EMAIL)
        if sftp_user is None:
            fail(f"Pressable SFTP user {user or CONCIERGE_EMAIL} not found on {pressable_site.id}.")
        email = sftp_user.email or user

        if multiple == "related":
            with command_errors("Failed to build the related sites tree"):
                tree = build_related_sites_tree(
                    find_production_site(pressable, pressable_site), pressable.list_sites()
                )
            console.print(render_sites_tree(tree))
            sites = flatten_tree(tree)
        else:
            sites = [pressable_site]

    if multiple is None:
        sftp_users = [sftp_user]
    else:
        console.print("Compiling list of Pressable SFTP users...")
        sftp_users = [
            lookup_sftp_user(pressable, s, email) for s in track(sites, description="Looking up SFTP users", console=console)
        ]

    if multiple == "all":
        confirm_or_abort(f"Rotate the SFTP user password of {email} on ALL sites?", yes)
        if not dry_run:
            confirm_or_abort("This is NOT a dry run. Continue rotating the SFTP users password?", yes)
    elif multiple == "related":
        confirm_or_abort(f"Rotate the SFTP user password of {email} on all the sites listed above?", yes)
    else:
        confirm_or_abort(
            f"Rotate the SFTP user password of {sftp_user.username} (ID {sftp_user.id}, email {sftp_user.email}) "
            f"on {sites[0].label}?",
            yes,
        )

    rotator = SFTPPasswordRotator(
        pressable,
        connect(DeployHQClient),
        dry_run=dry_run,
        permalink_prompt=None if yes else prompt_deployhq_permalink,
        console=console,
    )
    for pressable_site, sftp_user in zip(sites, sftp_users):
        if sftp_user is None:
            console.print(f"❌ [red]The SFTP user {email} does not exist on {pressable_site.label}. Skipping site...[/red]")
            continue
        rotator.rotate(pressable_site, sftp_user)


@app.command("rotate-site-wp-user-password")
def rotate_site_wp_user_password(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Email of the WP user (default: concierge)"),
    force: bool = typer.Option(False, "--force", help="Reset via Pressable even when passwords diverge"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """
    Rotate a WP user's password on a production site and all of its clones.

    The production password is then stored in the matching 1Password login.

    Examples:
        team51 pressable rotate-site-wp-user-password example.com
        team51 pressable rotate-site-wp-user-password 1234 --user someone@example.com --force
    """
    email = require_email(user)
    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)

    confirm_or_abort(f"Rotate the WP password of {email} on {pressable_site.label} and all related sites?", yes)

    with command_errors("Failed to rotate the WP user password"):
        success = rotate_wp_password(pressable, pressable_site, email, force=force, dry_run=dry_run)
    if not success:
        raise typer.Exit(1)


@app.command("add-site-domain")
def add_site_domain(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    domain: str = typer.Argument(..., help="Domain to add (e.g., example.com)"),
    primary: bool = typer.Option(False, "--primary", help="Make the new domain the primary one"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """
    Add a domain to a Pressable site, optionally making it primary.

    Staging sites are converted to live sites first. When the primary
    domain changes, URLs are search-replaced in the database and the
    1Password logins are pointed at the new domain.

    Examples:
        team51 pressable add-site-domain 1234 example.com --primary
    """
    new_domain = normalize_domain_input(domain)
    if new_domain is None:
        fail(f"Invalid domain provided: {domain}")

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)
    confirm_or_abort(f"Add the domain {new_domain} to {pressable_site.label}?", yes)
    if pressable_site.staging:
        confirm_or_abort(
            f"{pressable_site.label} is a staging site. Adding a domain will first convert it to a live site. Continue?",
            yes,
        )

    with command_errors("Failed to add the domain"):
        if pressable_site.staging:
            console.print("Converting the staging site to a live site...")
            pressable.convert_site(pressable_site.id)
            console.print("✅ [green]Site converted to live.[/green]")

        domains = pressable.add_domain(pressable_site.id, new_domain)
        console.print(f"✅ [green]Domain {new_domain} added to {pressable_site.label}.[/green]")

        if not any(d.primary and not is_case_insensitive_match(d.domain_name, new_domain) for d in domains):
            primary = True

        if not primary:
            return

        added = next((d for d in domains if is_case_insensitive_match(d.domain_name, new_domain)), None)
        if added is None:
            fail(f"Domain {new_domain} not found among the site's domains.")
        if not added.primary:
            pressable.set_primary_domain(pressable_site.id, added.id)
        console.print(f"✅ [green]Domain {new_domain} is now the primary domain.[/green]")

    old_url = pressable_site.url
    if is_case_insensitive_match(old_url, new_domain):
        return

    replace_site_urls(pressable, pressable_site, old_url, new_domain)
    update_onepassword_urls(pressable, pressable_site, old_url, new_domain)


def replace_site_urls(pressable: PressableClient, site: PressableSite, old_url: str, new_domain: str):
    """Search-replace the old URL and flush the cache; failures are reported for manual follow-up."""
    steps = (
        (f"wp search-replace {old_url} {new_domain}", "Search-replace via WP-CLI", "run it"),
        ("wp cache flush", "Object cache flush via WP-CLI", "flush it"),
    )
    try:
        with PressableConnection.for_site(pressable, site.id) as ssh:
            for command, label, manual in steps:
                console.print(f"Running [cyan]{command}[/cyan]")
                status, output = ssh.exec(command)
                if status != 0:
                    logger.debug(f"{command} exited with {status}: {output.strip()}")
                    console.print(f"❌ [red]{label} failed. Please {manual} manually![/red]")
                else:
                    console.print(f"✅ [green]{label} completed.[/green]")
    except (ConnectionHelperError, APIError) as e:
        console.print(f"❌ [red]Could not connect to {site.label} to replace the site URLs ({e}). Please run it manually![/red]")


def update_onepassword_urls(pressable: PressableClient, site: PressableSite, old_url: str, new_domain: str):
    with command_errors("Failed to update 1Password"):
        refreshed = pressable.get_site(site.id) or site
        op = connect(OnePasswordCLI)
        logins = op.search_items(lambda item: is_item_url_match(item, old_url), categories="login", tags="team51-cli")
    logger.debug(f"Found {len(logins)} 1Password logins that require a URL update")

    for login in logins:
        try:
            op.edit_item(login.id, title=refreshed.display_name or refreshed.name, url=f"https://{new_domain}")
        except OnePasswordError as e:
            console.print(f"❌ [red]Failed to update 1Password login {login.title} ({e}). Please update manually![/red]")
            continue
        console.print(f"✅ [green]Updated 1Password login {login.title}.[/green]")


@app.command("list-site-php-errors")
def list_site_php_errors(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    limit: int = typer.Option(5, "--limit", help="Number of distinct errors to show"),
    output_format: str = typer.Option("list", "--format", help="list, table or raw"),
    severity: Optional[str] = typer.Option(None, "--severity", help="User, Warning, Deprecated or 'Fatal error'"),
    source: str = typer.Option("auto", "--source", help="file (SSH), api (Pressable logs) or auto"),
):
    """
    Show the most recent distinct PHP errors of a site.

    With --source auto the log file is read over SSH unless the site logs
    to the default location or SSH is unavailable; the Pressable API is
    used then.

    Examples:
        team51 pressable list-site-php-errors example.com
        team51 pressable list-site-php-errors 1234 --format table --severity "Fatal error"
        team51 pressable list-site-php-errors 1234 --source api
    """
    with command_errors("Invalid input"):
        output_format = validate_enum(output_format, ("list", "table", "raw"), "format")
        severity = validate_enum(severity, SEVERITIES, "severity")
        source = validate_enum(source, ("file", "api", "auto"), "source")
    limit = max(1, limit)

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)

    errors = None
    if source != "api":
        errors = read_php_error_file(pressable, pressable_site, severity, source == "file")

    if errors is None:
        console.print("Reading the PHP errors from the Pressable API.")
        with command_errors("Could not retrieve the PHP errors from the Pressable API"):
            with console.status("[bold green]Fetching the PHP error log...", spinner="dots"):
                errors = errors_from_log_entries(pressable.list_php_logs(pressable_site.id, severity=severity))

    if not errors:
        console.print("📭 [yellow]The PHP error log appears to be empty. Go make some errors and try again![/yellow]")
        return

    if output_format == "raw":
        console.print(f"[bold magenta]Raw PHP errors on {pressable_site.label}:[/bold magenta]")
        console.print_json(data=[error.model_dump(mode="json") for error in errors])
        return

    summaries = summarize_errors(errors)[:limit]
    if output_format == "table":
        table = make_table(f"The {limit} most recent PHP errors", ["Timestamp", "Severity", "Count", "Message"])
        for summary in summaries:
            table.add_row(summary.timestamp, summary.severity, str(summary.count), f"[magenta]{summary.message}[/magenta]")
        console.print(table)
        return

    console.print(f"\n-- The {limit} most recent PHP errors --\n")
    for summary in summaries:
        console.print(f"[green]Timestamp: {summary.timestamp}[/green]")
        console.print(f"[green]Severity: {summary.severity}[/green]")
        console.print(f"[green]Count: {summary.count}[/green]")
        console.print(f"[magenta]{summary.message}[/magenta]", markup=True, highlight=False)
        console.print()


def read_php_error_file(
    pressable: PressableClient, site: PressableSite, severity: Optional[str], required: bool
) -> Optional[List[PHPError]]:
    """
    Read the site's PHP error log over SSH.

    Returns None when the API should be used instead: SSH is unavailable or
    the log sits at the default location, unless the file was ``required``.
    """
    try:
        connection = PressableConnection.for_site(pressable, site.id)
    except (ConnectionHelperError, APIError) as e:
        if required:
            fail(f"Could not connect to {site.label} over SSH: {e}")
        console.print(f"[yellow]SSH is not available ({e}).[/yellow]")
        return None

    with connection, command_errors("Could not retrieve the PHP errors"):
        path = find_error_log_path(connection)
        if path == DEFAULT_ERROR_LOG_PATH and not required:
            logger.info(f"The site logs to {DEFAULT_ERROR_LOG_PATH}, which Pressable also exposes through its API")
            return None

        console.print(f"Using the PHP error log location: [cyan]{path}[/cyan]")
        with console.status("[bold green]Downloading the PHP error log...", spinner="dots"):
            return parse_error_log(fetch_error_log(connection, path), severity=severity)


@app.command("run-site-wp-cli-command")
def run_site_wp_cli_command(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    command: List[str] = typer.Argument(..., help="WP-CLI command, with or without the leading 'wp'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Run a WP-CLI command on a site over SSH and stream its output.

    Examples:
        team51 pressable run-site-wp-cli-command example.com plugin list
        team51 pressable run-site-wp-cli-command 1234 -- option get home
    """
    wp_command = wp_cli_command(command)

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)
    confirm_or_abort(f"Run `wp {wp_command}` on {pressable_site.label}?", yes)

    with command_errors("Failed to run the WP-CLI command"):
        with PressableConnection.for_site(pressable, pressable_site.id) as ssh:
            status, _ = ssh.exec(
                f"wp {wp_command}",
                stream=lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
            )
    if status != 0:
        fail(f"WP-CLI exited with status {status}.")


@app.command("grant-access")
def grant_access(
    email: str = typer.Option(..., "--email", help="Email of the collaborator"),
    site_id: str = typer.Option(..., "--site-id", prompt="Site ID or URL", help="ID or URL of the site"),
):
    """
    Grant a collaborator access to a Pressable site.

    Example:
        team51 pressable grant-access --email someone@example.com --site-id 1234
    """
    if not validate_email(email):
        fail(f"Invalid email provided: {email}")

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site_id)
    console.print(f"Granting {email} access to {pressable_site.label}.")

    with command_errors("Failed to add the collaborator"):
        pressable.batch_create_collaborators(email, [pressable_site.id], GRANT_ACCESS_ROLES)

    console.print("✅ [green]Collaborator added to the site.[/green]")


@app.command("manage-collaborators")
def manage_collaborators(
    email: str = typer.Option(..., "--email", help="Email of the collaborator"),
    remove: bool = typer.Option(False, "--remove", help="Remove the collaborator from all sites"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    List (and optionally remove) a collaborator's access across all sites.

    Examples:
        team51 pressable manage-collaborators --email someone@example.com
        team51 pressable manage-collaborators --email someone@example.com --remove
    """
    pressable = connect(PressableClient)
    console.print("Getting collaborator data from Pressable.")
    with command_errors("Failed to look up the Pressable collaborators"):
        collaborators = [
            c for c in pressable.list_account_collaborators() if is_case_insensitive_match(c.email, email)
        ]

    if not collaborators:
        console.print(f"📭 [yellow]No collaborators found with the email '{email}'.[/yellow]")
        return

    console.print(f"User {email} is a collaborator on the following sites:")
    console.print(
        make_table(
            None,
            ["Default Pressable URL", "Site ID"],
            [(f"{c.site_name}.mystagingwebsite.com", c.site_id) for c in collaborators],
        )
    )

    if not remove:
        return
    confirm_or_abort(f"Remove {email} from all {len(collaborators)} sites listed above?", yes)

    for collaborator in collaborators:
        with command_errors(f"Failed to remove {collaborator.email} from {collaborator.site_name}"):
            pressable.delete_collaborator(collaborator.site_id, collaborator.id)
        console.print(f"✅ Removed {collaborator.email} from {collaborator.site_name}.")


@app.command("sftp-user")
def sftp_user(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    email: Optional[str] = typer.Option(None, "--email", help="Email to look up (default: the site owner)"),
):
    """
    Show the SFTP users of a site.

    Examples:
        team51 pressable sftp-user 1234
        team51 pressable sftp-user example.com --email someone@example.com
    """
    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)

    with command_errors("Failed to retrieve the SFTP users"):
        users = pressable.list_sftp_users(pressable_site.id)

    console.print(
        make_table(
            f"SFTP users on {pressable_site.url}",
            ["ID", "Username", "Email", "Owner"],
            [(u.id, u.username, u.email, "✅" if u.owner else "") for u in users],
        )
    )

    if email:
        match = next((u for u in users if u.email and is_case_insensitive_match(u.email, email)), None)
    else:
        match = next((u for u in users if u.owner), None)

    if match is None:
        fail(f"No username found for {email or 'site owner'} on site ID {pressable_site.id}.")
    console.print(f"SFTP username: [bold green]{match.username}[/bold green]")


@app.command("call-api")
def call_api(
    query: str = typer.Option(..., "--query", help='Endpoint after https://my.pressable.com/v1/ (e.g., "sites/1234")'),
    method: str = typer.Option("GET", "--method", help="HTTP method"),
    data: Optional[str] = typer.Option(None, "--data", help='JSON body (e.g., \'{"paginate":true}\')'),
):
    """
    Call the Pressable API directly.

    Example:
        team51 pressable call-api --query sites/1234
    """
    payload = None
    if data:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            fail("You must supply a valid JSON encoded string.")

    query = query.strip("/")
    console.print(f"Calling the Pressable API at [cyan]{query}[/cyan] using {method.upper()}.")

    with command_errors("Pressable API call failed"):
        result = connect(PressableClient).call_api(method, query, payload)
    console.print_json(data=result)


@app.command("generate-token")
def generate_token(
    client_id: Optional[str] = typer.Option(None, "--client-id", help="API application client ID"),
    client_secret: Optional[str] = typer.Option(None, "--client-secret", help="API application client secret"),
):
    """
    Generate a Pressable refresh token for a contractor's config file.

    Credentials default to the ones in config.json; missing values are
    prompted for.
    """
    settings = get_settings()
    client_id = client_id or settings.pressable_api_app_client_id or typer.prompt("Pressable client ID")
    client_secret = client_secret or settings.pressable_api_app_client_secret or typer.prompt(
        "Pressable client secret", hide_input=True
    )
    email = settings.pressable_account_email or typer.prompt("Pressable account email")
    password = settings.pressable_account_password or typer.prompt("Pressable account password", hide_input=True)

    with console.status("[bold green]Generating a refresh token from Pressable...", spinner="dots"):
        with command_errors("Failed to generate a refresh token"):
            tokens = PressableClient.generate_refresh_token(client_id, client_secret, email, password)

    console.print(
        Panel(
            f'"PRESSABLE_API_APP_CLIENT_ID": "{client_id}",\n'
            f'"PRESSABLE_API_APP_CLIENT_SECRET": "{client_secret}",\n'
            f'"PRESSABLE_API_REFRESH_TOKEN": "{tokens["refresh_token"]}",',
            title="🔑 Add these lines to the collaborator's config.json",
            border_style="green",
        )
    )


@app.command("get-db-backup")
def get_db_backup(site: str = typer.Argument(..., help="ID or URL of the site")):
    """
    Export a site's database, without user and order data, into the working directory.

    Example:
        team51 pressable get-db-backup example.com
    """
    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)

    file_name = f"{pressable_site.id}-{date.today():%Y-%m-%d}.sql"
    local_path = Path.cwd() / file_name
    console.print(f"[bold magenta]Exporting the database of {pressable_site.label}.[/bold magenta]")

    with command_errors("Failed to export the database"):
        with PressableConnection.for_site(pressable, pressable_site.id) as ssh:
            status, _ = ssh.exec(
                f"wp db export {file_name} --exclude_tables={','.join(DB_BACKUP_EXCLUDED_TABLES)}",
                stream=lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
            )
            if status != 0:
                fail(f"wp db export exited with status {status}.")

            with ssh.open_sftp() as sftp:
                sftp.get(file_name, str(local_path))
                sftp.remove(file_name)

    console.print(f"✅ [green]Database exported to {local_path}.[/green]")


def default_shell_user() -> Optional[str]:
    """Email of the team's 1Password account, when the CLI is signed in to it."""
    try:
        accounts = OnePasswordCLI().list_accounts()
    except OnePasswordError as e:
        logger.debug(f"1Password accounts not available: {e}")
        return None
    return next((a.email for a in accounts if a.account_uuid == TEAM_ONEPASSWORD_ACCOUNT), None)


@app.command("open-site-shell")
def open_site_shell(
    site: str = typer.Argument(..., help="ID or URL of the site to connect to"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Email to connect as (default: your 1Password email)"),
    shell_type: str = typer.Option("ssh", "--shell-type", help="ssh or sftp"),
):
    """
    Open an interactive SSH or SFTP shell on a site.

    Users outside Automattic get their SFTP password reset and printed,
    since they can't authenticate through the proxy.

    Examples:
        team51 pressable open-site-shell example.com
        team51 pressable open-site-shell 1234 --user someone@example.com --shell-type sftp
    """
    with command_errors("Invalid input"):
        shell_type = validate_enum(shell_type, ("ssh", "sftp"), "shell-type")

    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)
    email = user or default_shell_user() or typer.prompt("Email of the user to connect as")
    if not validate_email(email):
        fail(f"Invalid email provided: {email}")

    console.print(
        f"[bold magenta]Opening an interactive {shell_type} shell for {pressable_site.label} as {email}.[/bold magenta]"
    )

    with command_errors("Failed to prepare the SFTP user"):
        sftp_user = pressable.get_sftp_user_by_email(pressable_site.id, email)
        if sftp_user is None:
            logger.info(f"No SFTP user {email} on {pressable_site.label}, adding a collaborator")
            if pressable.create_collaborator(email, pressable_site.id, default_collaborator_roles(pressable_site)) is None:
                fail(f"Could not create a Pressable SFTP user with the email {email} on {pressable_site.label}.")
            # SFTP users are listed separately from collaborators.
            sftp_user = pressable.get_sftp_user_by_email(pressable_site.id, email)
        if sftp_user is None:
            fail(f"Could not find the SFTP user {email} on {pressable_site.label}.")

        if not email.lower().endswith("@automattic.com"):
            password = pressable.reset_sftp_password(pressable_site.id, sftp_user.username)
            console.print(f"New SFTP user password: [bold green]{password}[/bold green]")

    host = f"{sftp_user.username}@{PRESSABLE_SSH_HOST}"
    logger.info(f"Connecting to {host}")
    try:
        result = subprocess.run([shell_type, host])
    except OSError as e:
        fail(f"Could not open an interactive {shell_type} shell: {e}")
    if result.returncode != 0:
        raise typer.Exit(result.returncode)


@app.command("upload-site-icon")
def upload_site_icon(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without uploading"),
):
    """
    Upload the site icon as apple-touch-icon.png to the site root.

    Fixes the white square iOS shows when bookmarking a site without one.
    """
    pressable = connect(PressableClient)
    pressable_site = require_site(pressable, site)
    console.print(f"[bold green]Uploading apple-touch-icon.png to {pressable_site.url}[/bold green]")

    with command_errors("Failed to upload the site icon"):
        with PressableConnection.for_site(pressable, pressable_site.id) as ssh, ssh.open_sftp() as sftp:
            try:
                sftp.stat(SITE_ICON_FILE)
            except FileNotFoundError:
                pass
            else:
                fail(f"{SITE_ICON_FILE} already exists. Aborting.")

            console.print("Getting the site icon URL...")
            status, output = ssh.exec("wp --skip-themes --skip-plugins eval 'echo get_site_icon_url(180);'")
            url = output.strip()
            if status != 0 or not url.startswith(("http://", "https://")):
                logger.info(f"Site icon URL lookup returned: {output}")
                fail("Site has no icon set. Aborting.")
            logger.info(f"Site icon URL: {url}")

            console.print("Downloading the site icon...")
            with httpx.Client(follow_redirects=True, timeout=get_settings().http_timeout) as http:
                response = http.get(url)
                response.raise_for_status()
            if not response.content.startswith(PNG_SIGNATURE):
                fail("The site icon is not a PNG image. Convert it and upload it manually.")

            if dry_run:
                console.print("Dry run. Uploading skipped.")
                return
            sftp.putfo(io.BytesIO(response.content), SITE_ICON_FILE)

    console.print(f"✅ [green]Site icon uploaded: https://{pressable_site.url}/{SITE_ICON_FILE}[/green]")


def update_plugin_all_sites(
    plugin: str = typer.Option(AUTOUPDATE_FILTER_PLUGIN, "--plugin", help="Slug of the plugin to reinstall"),
    zip_url: str = typer.Option(AUTOUPDATE_FILTER_ZIP, "--zip-url", help="Release zip of the plugin"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Reinstall a plugin from its latest release on every Pressable site that
    already has it.

    Sites without the concierge SFTP user, or without the plugin, are skipped.

    Example:
        team51 update-plugin-all-sites
    """
    pressable = connect(PressableClient)
    with command_errors("Failed to retrieve Pressable sites"):
        sites = pressable.list_sites()
    if not sites:
        fail("Failed to retrieve Pressable sites.")
    confirm_or_abort(f"Reinstall {plugin} on the {len(sites)} Pressable sites that have it?", yes)

    updated = 0
    for site in sites:
        console.print(f"Accessing {site.label}")
        with site_errors(f"Failed to update {plugin} on {site.label}"):
            if pressable.get_sftp_user_by_email(site.id, CONCIERGE_EMAIL) is None:
                console.print(f"No {CONCIERGE_EMAIL} SFTP user on {site.label}. Skipping")
                continue
            with PressableConnection.for_site(pressable, site.id) as ssh:
                _, listing = ssh.exec("ls htdocs/wp-content/plugins")
                if plugin not in listing.split():
                    console.print("Plugin not previously installed on site. Skipping")
                    continue
                for command in (f"wp plugin delete {plugin}", f"wp plugin install {zip_url}"):
                    status, output = ssh.exec(command)
                    if status != 0:
                        raise RuntimeError(f"`{command}` exited with status {status}: {output.strip()}")
            updated += 1
            console.print("✅ [green]Plugin updated.[/green]")

    console.print(f"✅ [bold green]{plugin} updated on {updated} sites.[/bold green]")
