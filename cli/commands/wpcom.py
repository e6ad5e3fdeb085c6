"""
WordPress.com commands: blog stickers, WP-CLI over SSH and the Atomic
production/development site setup wired to DeployHQ.
"""

import logging
from typing import List, Optional

import typer

from cli.commands.pressable import wp_cli_command
from cli.commands.sites import base_server_params, log_slack_notice
from cli.output import command_errors, confirm_or_abort, connect, console, fail, make_table
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.github_client import GitHubClient
from team51.clients.wpcom_client import WPCOMClient
from team51.config import get_settings
from team51.connections import WPCOM_SSH_HOST, WPCOMConnection
from team51.provisioning import DEFAULT_ZONE, project_name_from_url
from team51.pyd_models.wpcom_models import AtomicTransfer, StagingSite, WPCOMSite

logger = logging.getLogger(__name__)

app = typer.Typer(help="📌 WordPress.com site management", add_completion=False)

SAFETY_NET_ZIP = "https://github.com/a8cteam51/safety-net/releases/latest/download/safety-net.zip"
MU_PLUGINS_PATH = "htdocs/wp-content/mu-plugins"
SAFETY_NET_LOADER = "load-safety-net.php"
STAGING_SITE_ACTIONS = ("delete", "connect")


def require_wpcom_site(wpcom: WPCOMClient, site: str) -> WPCOMSite:
    with command_errors("Failed to fetch site information"):
        wpcom_site = wpcom.get_site(site)
    if wpcom_site is None:
        fail(f"Could not find the WordPress.com site {site}. Is it on the team's account?")
    return wpcom_site


def print_transfer_status(transfer: Optional[AtomicTransfer]):
    console.print(f"Transfer status: {transfer.status if transfer else 'pending'}")


def setup_ssh_access(wpcom: WPCOMClient, site_id: int) -> str:
    """
    Make sure the site has an SFTP/SSH user, SSH enabled and the team key
    attached. Returns the SSH username.
    """
    with command_errors("Failed to set up SSH access"):
        users = wpcom.list_ssh_users(site_id)
        if users:
            username = users[0]
        else:
            console.print("Creating the SFTP/SSH user.")
            username = wpcom.create_ssh_user(site_id)
            console.print("✅ [green]Created the SFTP/SSH user.[/green]")
        logger.info(f"SSH user of site {site_id}: {username}")

        console.print("Enabling SSH.")
        if not wpcom.enable_ssh_access(site_id):
            fail("Failed to enable SSH.")
        if not wpcom.attach_ssh_key(site_id):
            console.print("⚠️  [yellow]There was an issue with attaching the SSH key or it's already added.[/yellow]")
    console.print("✅ [green]SSH enabled.[/green]")
    return username


def require_repository_slug(deployhq: DeployHQClient, project_name: str):
    with command_errors("Failed to look up the DeployHQ project"):
        project = deployhq.get_project(project_name)
    if project is None or project.repository is None or not project.repository.url:
        fail(f"No DeployHQ project with a repository found for {project_name}.")

    repo_slug = project.repository.url.rstrip("/").rsplit("/", 1)[-1]
    if repo_slug.endswith(".git"):
        repo_slug = repo_slug[: -len(".git")]
    return project, repo_slug


def install_safety_net(wpcom: WPCOMClient, site_id: int):
    """Install Safety Net as a must-use plugin on a staging site."""
    with command_errors("Failed to install Safety Net"):
        with WPCOMConnection.wait_for_site(wpcom, site_id) as ssh:
            status, output = ssh.exec(f"wp plugin install {SAFETY_NET_ZIP}")
            if status != 0:
                fail(f"Failed to install Safety Net on {site_id}: {output.strip()}")
            ssh.exec(f"mv -f htdocs/wp-content/plugins/safety-net {MU_PLUGINS_PATH}/safety-net")
            _, listing = ssh.exec(f"ls {MU_PLUGINS_PATH}")

    if "safety-net" not in listing:
        fail(f"Failed to install Safety Net on {site_id}.")
    if SAFETY_NET_LOADER not in listing:
        console.print(
            f"⚠️  [yellow]No {SAFETY_NET_LOADER} in mu-plugins, add the loader so Safety Net runs.[/yellow]"
        )
    console.print("✅ [green]Safety Net installed.[/green]")


@app.command("get-stickers")
def get_stickers(site: str = typer.Argument(..., help="ID or URL of the site")):
    """
    List the blog stickers of a site.

    Example:
        team51 wpcom get-stickers example.com
    """
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    with command_errors("Failed to retrieve the stickers"):
        stickers = wpcom.list_stickers(wpcom_site.id)

    if not stickers:
        console.print("📭 [yellow]Site has no stickers associated.[/yellow]")
        return
    console.print(make_table(None, [f"ID: {wpcom_site.id} ({wpcom_site.url})"], [(sticker,) for sticker in stickers]))


@app.command("add-sticker")
def add_sticker(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    sticker: str = typer.Argument(..., help="Sticker to add"),
):
    """Add a blog sticker to a site."""
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    with command_errors(f"Failed to add sticker {sticker}"):
        added = wpcom.add_sticker(wpcom_site.id, sticker)
    if not added:
        fail(f"Failed to add sticker {sticker} to {wpcom_site.url}.")
    console.print(f"✅ [green]Sticker {sticker} added to {wpcom_site.url}.[/green]")


@app.command("remove-sticker")
def remove_sticker(
    site: str = typer.Argument(..., help="ID or URL of the site"),
    sticker: str = typer.Argument(..., help="Sticker to remove"),
):
    """Remove a blog sticker from a site."""
    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)

    with command_errors(f"Failed to remove sticker {sticker}"):
        removed = wpcom.remove_sticker(wpcom_site.id, sticker)
    if not removed:
        fail(f"Failed to remove sticker {sticker} from {wpcom_site.url}.")
    console.print(f"✅ [green]Sticker {sticker} removed from {wpcom_site.url}.[/green]")


@app.command("run-site-wp-cli-command")
def run_site_wp_cli_command(
    site: str = typer.Argument(..., help="ID or URL of the Atomic site"),
    command: List[str] = typer.Argument(..., help="WP-CLI command, with or without the leading 'wp'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Run a WP-CLI command on a WordPress.com Atomic site over SSH.

    Example:
        team51 wpcom run-site-wp-cli-command example.com plugin list
    """
    wp_command = wp_cli_command(command)

    wpcom = connect(WPCOMClient)
    wpcom_site = require_wpcom_site(wpcom, site)
    confirm_or_abort(f"Run `wp {wp_command}` on {wpcom_site.url}?", yes)

    with command_errors("Failed to run the WP-CLI command"):
        with WPCOMConnection.wait_for_site(wpcom, wpcom_site.id) as ssh:
            status, _ = ssh.exec(
                f"wp {wp_command}",
                stream=lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
            )
    if status != 0:
        fail(f"WP-CLI exited with status {status}.")


def create_production_site_wpcom(
    blog_id: str = typer.Option(..., "--blog-id", help="Blog ID of the site on WordPress.com"),
    repo_slug: str = typer.Option(..., "--connect-to-repo", help="GitHub repository to deploy from"),
    zone_id: int = typer.Option(DEFAULT_ZONE.deployhq_zone_id, "--zone-id", help="DeployHQ zone of the project"),
    template_id: Optional[str] = typer.Option(None, "--template-id", help="DeployHQ project template"),
):
    """
    Set up deployments for a WordPress.com production site.

    The site has to exist on the concierge account with a Business plan or
    higher. It is transferred to Atomic first when it isn't there yet.

    Example:
        team51 create-production-site-wpcom --blog-id 123456 --connect-to-repo client-site
    """
    settings = get_settings()
    wpcom = connect(WPCOMClient)
    site = require_wpcom_site(wpcom, blog_id)
    project_name = project_name_from_url(site.url)

    if not site.is_wpcom_atomic:
        console.print("Checking if the site is eligible for Atomic.")
        with command_errors("Failed to check the Atomic eligibility"):
            eligible, errors = wpcom.get_transfer_eligibility(site.id)
        if not eligible:
            fail(f"Site is not eligible for Atomic! {' | '.join(errors)}")

        console.print("[bold magenta]Starting the transfer to Atomic.[/bold magenta]")
        with command_errors("Failed to transfer the site to Atomic"):
            transfer_id = wpcom.initiate_transfer(site.id)
            with console.status("[bold green]Waiting for the transfer to complete...", spinner="dots"):
                wpcom.wait_for_transfer(site.id, transfer_id, on_poll=print_transfer_status)
    console.print("✅ [green]Site is Atomic![/green]")

    username = setup_ssh_access(wpcom, site.id)

    deployhq = connect(DeployHQClient)
    github = connect(GitHubClient)

    with command_errors("Failed to configure DeployHQ"):
        console.print(f"Creating the DeployHQ project {project_name}.")
        project = deployhq.create_project(
            project_name, zone_id, template_id or settings.deployhq_default_project_template
        )
        project = deployhq.update_project(project.permalink, {"custom_private_key": settings.deployhq_private_key})
        deployhq.create_repository(project.permalink, f"git@github.com:{github.owner}/{repo_slug}.git", "trunk")

        server = deployhq.create_server(
            project.permalink,
            {
                **base_server_params("Production", "production", "trunk", WPCOM_SSH_HOST, username),
                "use_ssh_keys": True,
            },
        )
        with console.status("[bold green]Waiting for the server host key...", spinner="dots"):
            deployhq.wait_for_host_key(project.permalink, server.identifier)
    console.print(f"✅ [green]DeployHQ project {project.permalink} configured.[/green]")

    if not project.auto_deploy_url:
        fail("The DeployHQ project has no auto deploy URL.")
    with command_errors("Failed to add the GitHub webhook"):
        github.create_push_webhook(github.owner, repo_slug, project.auto_deploy_url)
    console.print("✅ [green]GitHub push webhook added.[/green]")

    log_slack_notice(f"INFO: WPCOM / DeployHQ: create-production-site-wpcom run for {site.url}")
    console.print("✅ [bold green]DeployHQ is now set up and ready to start receiving and deploying commits![/bold green]")


@app.command("create-development-site")
def create_development_site(
    site_id: str = typer.Option(..., "--site-id", help="ID or URL of the production site"),
    branch: str = typer.Option("develop", "--branch", help="Branch deployed to the staging site"),
    temporary_clone: bool = typer.Option(False, "--temporary-clone", help="Name the DeployHQ server after the clone"),
    skip_safety_net: bool = typer.Option(False, "--skip-safety-net", help="Don't install Safety Net"),
    existing: Optional[str] = typer.Option(
        None, "--existing", help="What to do with an existing staging site: delete or connect"
    ),
):
    """
    Create a WordPress.com staging site and deploy a branch to it.

    Examples:
        team51 wpcom create-development-site --site-id 123456
        team51 wpcom create-development-site --site-id 123456 --existing connect --skip-safety-net
    """
    wpcom = connect(WPCOMClient)
    site = require_wpcom_site(wpcom, site_id)
    project_name = project_name_from_url(site.url)
    console.print(f"#{site.id} exists as {site.url}.")

    with command_errors("Failed to list the staging sites"):
        staging_sites = wpcom.list_staging_sites(site.id)

    staging: Optional[StagingSite] = None
    if staging_sites:
        current = staging_sites[0]
        console.print(f"⚠️  [yellow]Staging site already exists: {current.url}[/yellow]")
        action = (existing or typer.prompt("Next action? (delete / connect)", default="delete")).lower()
        if action not in STAGING_SITE_ACTIONS:
            fail(f"Unknown action {action}, use delete or connect.")

        if action == "delete":
            console.print(f"Deleting the staging site {current.url}.")
            with command_errors("Failed to delete the staging site"):
                wpcom.delete_staging_site(site.id, current.id)
                with console.status("[bold green]Waiting for the staging site to be deleted...", spinner="dots"):
                    wpcom.wait_for_staging_site_deletion(current.id)
            console.print("✅ [green]Staging site deleted.[/green]")
        else:
            staging = current
            console.print("Connecting the existing staging site to DeployHQ.")

    if staging is None:
        with command_errors("Failed to create the staging site"):
            if not wpcom.validate_staging_quota(site.id):
                fail(f"#{site.id} doesn't have enough space for a staging site.")
            console.print(f"[bold magenta]Creating a new staging site for #{site.id}.[/bold magenta]")
            staging = wpcom.create_staging_site(site.id)
            with console.status("[bold green]Waiting for the staging site...", spinner="dots"):
                wpcom.wait_for_transfer(staging.id, on_poll=print_transfer_status)
        console.print(f"✅ [green]Created a new staging site {staging.url}.[/green]")

    username = setup_ssh_access(wpcom, staging.id)

    if skip_safety_net:
        console.print("Skipping the Safety Net installation.")
    else:
        install_safety_net(wpcom, staging.id)

    deployhq = connect(DeployHQClient)
    github = connect(GitHubClient)
    project, repo_slug = require_repository_slug(deployhq, project_name)

    with command_errors("Failed to prepare the GitHub branch"):
        if github.get_branch_ref(github.owner, repo_slug, branch) is None:
            trunk = github.get_branch_ref(github.owner, repo_slug, "trunk")
            if trunk is None:
                fail(f"Branch trunk not found on {repo_slug}.")
            github.create_branch(github.owner, repo_slug, branch, trunk.object.sha)
            console.print(f"✅ [green]Branch {branch} created from trunk.[/green]")

    server_name = f"Development-{staging.id}" if temporary_clone else "Development"
    with command_errors("Failed to configure DeployHQ"):
        deployhq.create_repository(project.permalink, project.repository.url, branch)
        server = deployhq.create_server(
            project.permalink,
            {
                **base_server_params(server_name, "development", branch, WPCOM_SSH_HOST, username),
                "use_ssh_keys": True,
            },
        )
        with console.status("[bold green]Waiting for the server host key...", spinner="dots"):
            deployhq.wait_for_host_key(project.permalink, server.identifier)
    console.print(f"✅ [green]DeployHQ server {server_name} deploys {branch} to {staging.url}.[/green]")

    log_slack_notice(f"INFO: WPCOM / DeployHQ: create-development-site run for {staging.url}")
    console.print(f"✅ [bold green]All done! {staging.url}[/bold green]")
