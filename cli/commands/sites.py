"""
Top-level commands: site and repository provisioning, user removal, site list.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.progress import Progress

from cli.commands.pressable import rotate_wp_password
from cli.output import command_errors, connect, confirm_or_abort, console, fail, make_table
from team51.clients.base import APIError
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.github_client import GitHubClient
from team51.clients.pressable_client import PressableClient
from team51.clients.slack_client import log_to_slack
from team51.clients.wpcom_client import WPCOMClient
from team51.config import get_settings
from team51.connections import PRESSABLE_SSH_HOST, SSH_PORT
from team51.provisioning import (
    LABELS_TO_DELETE,
    REPOSITORY_LABELS,
    REPOSITORY_TYPES,
    classify_wpcom_site,
    development_site_name,
    eval_is_coming_soon,
    filter_reportable_sites,
    production_site_name,
    project_name_from_site_name,
    resolve_zone,
    temporary_clone_name,
)
from team51.pyd_models.pressable_models import PressableSite
from team51.rotation import CONCIERGE_EMAIL
from team51.utils import slugify, validate_email, validate_enum

logger = logging.getLogger(__name__)

WOOCOMMERCE_URL = "https://woocommerce.com"
SITE_LIST_EXPORT_NAME = "site-list"


def base_server_params(name: str, environment: str, branch: str, hostname: str, username: str) -> dict:
    return {
        "name": name,
        "protocol_type": "ssh",
        "server_path": "wp-content",
        "email_notify_on": "never",
        "root_path": "",
        "auto_deploy": True,
        "notification_email": "",
        "branch": branch,
        "environment": environment,
        "hostname": hostname,
        "username": username,
        "port": SSH_PORT,
    }


def log_slack_notice(message: str):
    """Slack is best effort; a failed notification doesn't fail the command."""
    console.print("Logging to Slack.")
    try:
        log_to_slack(message)
    except (APIError, httpx.HTTPError) as e:
        console.print(f"⚠️  [yellow]Failed to log to Slack: {e}[/yellow]")


def provision_production_site(site_name: str, repo_slug: Optional[str], zone: Optional[str]) -> PressableSite:
    """
    Create a Pressable production site and wire it to a GitHub repository
    through a new DeployHQ project.
    """
    settings = get_settings()
    zone_info = resolve_zone(zone)
    pressable = connect(PressableClient)

    console.print(f"[bold magenta]Creating the Pressable site {production_site_name(site_name)}.[/bold magenta]")
    with command_errors("Failed to create the Pressable site"):
        site = pressable.create_site(production_site_name(site_name), zone_info.datacenter_code)
        with console.status("[bold green]Waiting for the site to finish deploying...", spinner="dots"):
            site = pressable.wait_for_site(site.id)
    console.print(f"✅ [green]Pressable site created: {site.name} (ID {site.id}, {site.url}).[/green]")

    with command_errors("Failed to rotate the concierge WP password"):
        if not rotate_wp_password(pressable, site, CONCIERGE_EMAIL):
            console.print("⚠️  [yellow]The concierge WP password could not be rotated.[/yellow]")

    with command_errors("Failed to look up the site owner"):
        owner = pressable.get_sftp_owner(site.id)
    if owner is None:
        fail(f"Could not find the SFTP owner of {site.name}.")

    if not repo_slug:
        console.print("No repository given, skipping the DeployHQ setup.")
        return site

    deployhq = connect(DeployHQClient)
    github = connect(GitHubClient)

    with command_errors("Failed to configure DeployHQ"):
        console.print(f"Creating the DeployHQ project {site_name}.")
        project = deployhq.create_project(
            site_name, zone_info.deployhq_zone_id, settings.deployhq_default_project_template
        )
        project = deployhq.update_project(project.permalink, {"custom_private_key": settings.deployhq_private_key})
        deployhq.create_repository(project.permalink, f"git@github.com:{github.owner}/{repo_slug}.git", "trunk")

        server = deployhq.create_server(
            project.permalink,
            {
                **base_server_params("Production", "production", "trunk", PRESSABLE_SSH_HOST, owner.username),
                "use_ssh_keys": True,
            },
        )
        with console.status("[bold green]Waiting for the server host key...", spinner="dots"):
            deployhq.wait_for_host_key(project.permalink, server.identifier)
    console.print(f"✅ [green]DeployHQ project {project.permalink} configured.[/green]")

    with command_errors("Failed to add the GitHub webhook"):
        if project.auto_deploy_url:
            github.create_push_webhook(github.owner, repo_slug, project.auto_deploy_url)
            console.print("✅ [green]GitHub push webhook added.[/green]")
        else:
            console.print("⚠️  [yellow]The DeployHQ project has no auto deploy URL, add the webhook manually.[/yellow]")

    console.print("💡 [dim]Manual task: install and connect Jetpack to the team account.[/dim]")
    log_slack_notice(f"INFO: Pressable / DeployHQ: create-production-site run for {site_name}")
    return site


def create_production_site(
    site_name: str = typer.Option(..., "--site-name", help="Slug of the site, without the -production suffix"),
    repo_slug: Optional[str] = typer.Option(None, "--repo-slug", help="GitHub repository to deploy from"),
    zone: Optional[str] = typer.Option(None, "--zone", help="EU, US-West, US-East or US-Central (default)"),
):
    """
    Create a Pressable production site connected to GitHub via DeployHQ.

    Examples:
        team51 create-production-site --site-name my-site --repo-slug my-site
        team51 create-production-site --site-name my-site --zone EU
    """
    if slugify(site_name) != site_name:
        fail(f"Invalid site name {site_name}, use a slug like {slugify(site_name)}.")

    site = provision_production_site(site_name, repo_slug, zone)
    console.print(f"✅ [bold green]All done! https://{site.url}[/bold green]")


def create_development_site(
    site_id: int = typer.Option(..., "--site-id", help="ID of the production site to clone"),
    branch: str = typer.Option("develop", "--branch", help="Branch deployed to the development site"),
    temporary_clone: bool = typer.Option(False, "--temporary-clone", help="Create a throwaway clone"),
    label: Optional[str] = typer.Option(None, "--label", help="Name suffix for a temporary clone"),
):
    """
    Clone a production site into a development site deployed from a branch.

    Examples:
        team51 create-development-site --site-id 1234
        team51 create-development-site --site-id 1234 --temporary-clone --label qa --branch fix/header
    """
    pressable = connect(PressableClient)
    deployhq = connect(DeployHQClient)
    github = connect(GitHubClient)

    with command_errors("Failed to look up the Pressable site"):
        production = pressable.get_site(site_id)
    if production is None:
        fail(f"Pressable site {site_id} not found.")

    dev_name = development_site_name(production.name)
    if temporary_clone:
        dev_name = temporary_clone_name(dev_name, label)

    console.print(f"[bold magenta]Cloning {production.name} into {dev_name}.[/bold magenta]")
    with command_errors("Failed to clone the Pressable site"):
        clone = pressable.clone_site(production.id, dev_name)
        with console.status("[bold green]Waiting for the clone to finish deploying...", spinner="dots"):
            clone = pressable.wait_for_site(clone.id)
    console.print(f"✅ [green]Pressable site cloned: {clone.name} (ID {clone.id}).[/green]")

    with command_errors("Failed to reset the owner SFTP password"):
        owner = pressable.get_sftp_owner(clone.id)
        if owner is None:
            fail(f"Could not find the SFTP owner of {clone.name}.")
        password = pressable.reset_sftp_password(clone.id, owner.username)

    with command_errors("Failed to look up the DeployHQ project"):
        project = deployhq.get_project(project_name_from_site_name(production.name))
    if project is None or project.repository is None or not project.repository.url:
        fail(f"No DeployHQ project with a repository found for {production.name}.")

    repo_slug = project.repository.url.rstrip("/").rsplit("/", 1)[-1]
    if repo_slug.endswith(".git"):
        repo_slug = repo_slug[: -len(".git")]

    with command_errors("Failed to prepare the GitHub branch"):
        if github.get_branch_ref(github.owner, repo_slug, branch) is None:
            trunk = github.get_branch_ref(github.owner, repo_slug, "trunk")
            if trunk is None:
                fail(f"Branch trunk not found on {repo_slug}.")
            github.create_branch(github.owner, repo_slug, branch, trunk.object.sha)
            console.print(f"✅ [green]Branch {branch} created from trunk.[/green]")

    server_name = f"Development-{clone.id}" if temporary_clone else "Development"
    with command_errors("Failed to configure DeployHQ"):
        deployhq.create_repository(project.permalink, project.repository.url, branch)
        server = deployhq.create_server(
            project.permalink,
            {
                **base_server_params(
                    server_name, "development", branch, owner.sftp_domain or PRESSABLE_SSH_HOST, owner.username
                ),
                "use_ssh_keys": False,
                "password": password,
            },
        )
        with console.status("[bold green]Waiting for the server host key...", spinner="dots"):
            deployhq.wait_for_host_key(project.permalink, server.identifier)
    console.print(f"✅ [green]DeployHQ server {server_name} deploys {branch} to {clone.name}.[/green]")

    log_slack_notice(f"INFO: Pressable / DeployHQ: create-development-site run for {clone.name}")
    console.print(f"✅ [bold green]All done! https://{clone.name}.mystagingwebsite.com[/bold green]")


def create_repository(
    repo_slug: str = typer.Option(..., "--repo-slug", help="Repository name in slug form (e.g., client-name)"),
    repo_type: str = typer.Option("project", "--type", help="project, plugin or issues"),
    description: str = typer.Option("", "--description", help="Short description of the project"),
    homepage: Optional[str] = typer.Option(None, "--homepage", help="Production URL of the site"),
    production_site: bool = typer.Option(
        False, "--create-production-site", help="Also create and connect a Pressable production site"
    ),
    zone: Optional[str] = typer.Option(None, "--zone", help="Zone of the production site"),
):
    """
    Create a GitHub repository from the team's scaffold template.

    Examples:
        team51 create-repository --repo-slug client-name --description "Client site"
        team51 create-repository --repo-slug client-name --create-production-site
    """
    with command_errors("Invalid input"):
        repo_type = validate_enum(repo_type, REPOSITORY_TYPES, "type")
    repo_slug = repo_slug.lower()
    if slugify(repo_slug) != repo_slug:
        fail(f"Invalid repository slug {repo_slug}, use a slug like {slugify(repo_slug)}.")

    settings = get_settings()
    github = connect(GitHubClient)
    owner = github.owner

    with command_errors("Failed to look up the repository"):
        if github.get_repository(owner, repo_slug) is not None:
            fail(f"Repository {repo_slug} already exists in the {owner} org. Please choose a different name.")

    console.print(f"[bold magenta]Creating a new GitHub {repo_type} repository with the slug {repo_slug}.[/bold magenta]")
    with command_errors(f"Failed to create the {repo_slug} repository"):
        repository = github.create_repository_from_template(
            owner, repo_slug, owner, f"team51-{repo_type}-scaffold", description
        )
        body = {"has_issues": True, "has_projects": True, "has_wiki": True}
        if homepage:
            body["homepage"] = homepage
        repository = github.update_repository(owner, repo_slug, body)
        github.replace_topics(owner, repo_slug, [f"team51-{repo_type}"])
    console.print(f"✅ [green]Repository {repo_slug} created from template.[/green]")

    with command_errors("Failed to configure the repository labels"):
        with Progress(console=console) as progress:
            task = progress.add_task("Configuring labels", total=len(LABELS_TO_DELETE) + len(REPOSITORY_LABELS))
            for name in LABELS_TO_DELETE:
                github.delete_label(owner, repo_slug, name)
                progress.advance(task)
            for label in REPOSITORY_LABELS:
                github.create_label(owner, repo_slug, label["name"], label["color"], label.get("description"))
                progress.advance(task)

    if settings.github_team_to_add_to_new_repository:
        with command_errors("Failed to add the team to the repository"):
            github.add_team_repository(owner, settings.github_team_to_add_to_new_repository, owner, repo_slug, "push")
        console.print(f"✅ [green]Team {settings.github_team_to_add_to_new_repository} added to the repository.[/green]")

    console.print(f"✅ [bold green]GitHub repository setup is complete! Check it out here: {repository.html_url}[/bold green]")
    log_slack_notice(f"INFO: GitHub repo init run for {repository.html_url}.")

    if production_site and repo_type == "project":
        console.print("Creating and configuring a new Pressable site.")
        provision_production_site(repo_slug, repo_slug, zone)


def remove_user(
    email: str = typer.Argument(..., help="Email of the user to remove"),
    list_only: bool = typer.Option(False, "--list", help="Only list the sites the user has access to"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Remove a user from every Pressable site and WordPress.com site.

    Examples:
        team51 remove-user someone@example.com --list
        team51 remove-user someone@example.com
    """
    if not validate_email(email):
        fail(f"Invalid email provided: {email}")

    pressable = connect(PressableClient)
    wpcom = connect(WPCOMClient)

    console.print("Getting collaborator data from Pressable.")
    with command_errors("Failed to look up the Pressable collaborators"):
        collaborators = [c for c in pressable.list_account_collaborators() if c.email.lower() == email.lower()]

    console.print("Getting user data from WordPress.com.")
    with command_errors("Failed to look up the WordPress.com sites"):
        sites = [site for site in wpcom.list_sites(fields="ID,URL") if site.url != WOOCOMMERCE_URL]

    with console.status(f"[bold green]Searching for {email} across {len(sites)} sites...", spinner="dots"):
        results = wpcom.call_api_concurrent(
            {
                site.id: f"sites/{site.id}/users/?search={email}&search_columns=user_email&fields=ID,email,site_ID,URL"
                for site in sites
            }
        )

    site_urls = {site.id: site.url for site in sites}
    failed_sites = [site_id for site_id, result in results.items() if result is None]
    wpcom_users = [
        (site_id, user)
        for site_id, result in results.items()
        if result
        for user in result.get("users", [])
    ]

    if collaborators:
        console.print(
            make_table(
                "Pressable collaborators",
                ["Collaborator Email", "Site ID", "Site Name"],
                [(c.email, c.site_id, c.site_name) for c in collaborators],
            )
        )
    else:
        console.print(f"📭 [yellow]No collaborators found in Pressable with the email '{email}'.[/yellow]")

    if wpcom_users:
        console.print(
            make_table(
                "WordPress.com users",
                ["User Email", "User ID", "Site ID", "Site URL"],
                [(user.get("email"), user.get("ID"), site_id, site_urls[site_id]) for site_id, user in wpcom_users],
            )
        )
    else:
        console.print(f"📭 [yellow]No users found on WordPress.com sites with the email '{email}'.[/yellow]")

    if failed_sites:
        console.print(
            make_table("Sites that could not be searched", ["Site ID", "Site URL"], [(s, site_urls[s]) for s in failed_sites])
        )

    if list_only or not (collaborators or wpcom_users):
        return
    confirm_or_abort("Are you sure you want to remove this user on ALL sites listed above?", yes)

    for collaborator in collaborators:
        try:
            pressable.delete_collaborator(collaborator.site_id, collaborator.id)
            console.print(f"✅ Removed {collaborator.email} from Pressable site {collaborator.site_name}.")
        except APIError as e:
            console.print(f"❌ [red]Failed to remove {collaborator.email} from Pressable site {collaborator.site_name}: {e}[/red]")

    for site_id, user in wpcom_users:
        try:
            wpcom.delete_site_user(site_id, user["ID"])
            console.print(f"✅ Removed {user.get('email')} from WordPress.com site {site_urls[site_id]}.")
        except APIError as e:
            console.print(f"❌ [red]Failed to remove {user.get('email')} from WordPress.com site {site_urls[site_id]}: {e}[/red]")


def site_list(
    export: Optional[str] = typer.Option(None, "--export", help="Also export the list as csv or json"),
):
    """
    List the team's public sites with their host.

    Examples:
        team51 site-list
        team51 site-list --export csv
    """
    with command_errors("Invalid input"):
        export = validate_enum(export, ("csv", "json"), "export")

    with console.status("[bold green]Fetching sites from WordPress.com...", spinner="dots"):
        with command_errors("Failed to fetch the sites"):
            all_sites = connect(WPCOMClient).list_sites(
                fields="ID,name,URL,is_private,is_coming_soon,is_wpcom_atomic,jetpack"
            )
    console.print(f"{len(all_sites)} sites found in total. Filtering...")

    sites = filter_reportable_sites(all_sites)
    rows = [
        (site.name, site.url.replace("https://", "").replace("http://", ""), site.id, classify_wpcom_site(site), eval_is_coming_soon(site))
        for site in sites
    ]
    columns = ["Site Name", "Domain", "Site ID", "Host", "Coming Soon"]

    console.print(make_table("Team sites", columns, rows))
    for host in ("Atomic", "Pressable", "Simple"):
        count = sum(1 for row in rows if row[3] == host)
        label = "Pressable (or other)" if host == "Pressable" else host
        console.print(f"{count} {label} sites.")
    console.print(f"{len(all_sites) - len(sites)} sites filtered.")

    if export is None:
        return

    path = Path.cwd() / f"{SITE_LIST_EXPORT_NAME}.{export}"
    if export == "csv":
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(columns)
            writer.writerows(rows)
    else:
        path.write_text(json.dumps([dict(zip(columns, row)) for row in rows], indent=2), encoding="utf-8")
    console.print(f"✅ [green]Exported {len(rows)} sites to {path}.[/green]")
