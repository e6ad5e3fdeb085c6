"""
GitHub commands: branch protection, teams, Actions secrets, default branch
renames and the DevQueue triage boards.
"""

import logging
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.progress import track
from rich.text import Text

from cli.output import command_errors, confirm_or_abort, connect, console, fail, site_errors
from team51.clients.base import APIError
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.github_client import GitHubClient
from team51.clients.pressable_client import PressableClient
from team51.config import get_settings
from team51.devqueue import (
    IN_PROGRESS_STATUS,
    TRIAGE_STATUS,
    WAITING_FEEDBACK_STATUS,
    item_has_status,
    triage_issue_from_item,
    urgent_issues,
)
from team51.pressable_sites import default_collaborator_roles
from team51.pyd_models.deployhq_models import DeployHQProject
from team51.pyd_models.github_models import GitHubRepository, TeamAccessLevel
from team51.utils import is_case_insensitive_match, validate_email, validate_enum

logger = logging.getLogger(__name__)

app = typer.Typer(help="🐙 GitHub repository management", add_completion=False)

ACCESS_LEVELS = tuple(level.value for level in TeamAccessLevel)


@app.command("add-branch-protection-rules")
def add_branch_protection_rules(
    repo: str = typer.Argument(..., help="Repository name in slug form (e.g., client-name)"),
):
    """
    Protect the trunk branch of a repository (PHPCS status check required).

    Example:
        team51 github add-branch-protection-rules client-name
    """
    github = connect(GitHubClient)
    console.print(f"Adding branch protection rules to {repo}.")

    with command_errors(f"Failed to add branch protection rules to {repo}"):
        github.add_branch_protection(github.owner, repo)

    console.print(f"✅ [green]Added branch protection rules to {repo}.[/green]")


@app.command("delete-trunk-protection-rules")
def delete_trunk_protection_rules(
    repo: str = typer.Argument(..., help="Repository name in slug form (e.g., client-name)"),
):
    """
    Remove the protection rules from the trunk branch of a repository.

    Example:
        team51 github delete-trunk-protection-rules client-name
    """
    github = connect(GitHubClient)
    console.print(f"Deleting branch protection rules from {repo}.")

    with command_errors(f"Failed to delete branch protection rules for {repo}"):
        github.delete_branch_protection(github.owner, repo)

    console.print(f"✅ [green]Deleted branch protection rules for {repo}.[/green]")


@app.command("team-add-user")
def team_add_user(
    user: str = typer.Option(..., "--user", help="GitHub username of the collaborator"),
    team: str = typer.Option(..., "--team", help="triage, deploy or admin"),
):
    """
    Add a GitHub user to one of the organization's access teams.

    Example:
        team51 github team-add-user --user octocat --team deploy
    """
    with command_errors("Invalid input"):
        team = validate_enum(team, ACCESS_LEVELS, "team")

    github = connect(GitHubClient)
    console.print(f"Granting {user} access to the {github.owner} organization...")

    with command_errors("Something went wrong. GitHub says"):
        github.add_team_membership(github.owner, team, user)

    console.print(f"✅ [green]The user '{user}' has been added to team '{team}'![/green]")


@app.command("repos-to-teams")
def repos_to_teams(
    team: str = typer.Option(..., "--team", help="Slug of the GitHub team"),
    access: str = typer.Option(..., "--access", help="triage, deploy or admin"),
    repos: Optional[List[str]] = typer.Option(None, "--repo", help="Repository to add (repeatable, default: all)"),
):
    """
    Give a team access to the organization's repositories.

    Examples:
        team51 github repos-to-teams --team deploy --access deploy
        team51 github repos-to-teams --team admin --access admin --repo site-a --repo site-b
    """
    with command_errors("Invalid input"):
        level = TeamAccessLevel(validate_enum(access, ACCESS_LEVELS, "access"))

    github = connect(GitHubClient)

    if not repos:
        console.print("Pulling all repositories from the GitHub organization.")
        with command_errors("Failed to list the repositories"):
            repos = [repository.name for repository in github.iter_org_repositories(github.owner)]
    console.print(f"{len(repos)} repositories will be added to team '{team}' with {level.permission} access.")

    failures = 0
    for repo in track(repos, description=f"Adding repositories to {team}", console=console):
        try:
            github.add_team_repository(github.owner, team, github.owner, repo, level.permission)
        except APIError as e:
            failures += 1
            console.print(f"❌ [red]Something went wrong when adding '{repo}' to team '{team}': {e}[/red]")

    if failures:
        fail(f"{failures} of {len(repos)} repositories could not be added.")
    console.print("✅ [green]All done.[/green]")


def map_repositories_to_site_urls(
    deployhq: DeployHQClient,
    pressable: PressableClient,
    owner: str,
    account_email: Optional[str],
) -> Dict[str, Optional[str]]:
    """
    Match repositories to the URL of the Pressable site their trunk deploys to.

    DeployHQ projects point at ``git@github.com:<owner>/<repo>.git`` and
    their trunk server logs in as a Pressable SFTP user; the site owning
    that SFTP username (under the account email) gives the URL.
    """
    pattern = re.compile(rf"git@github\.com:{re.escape(owner)}/(.+)\.git")
    repos_by_sftp_user: Dict[str, str] = {}

    for project in deployhq.list_projects():
        if project.repository is None or not project.repository.url:
            continue
        match = pattern.match(project.repository.url)
        if not match:
            continue
        trunk_server = next((s for s in deployhq.list_servers(project.permalink) if s.branch == "trunk"), None)
        if trunk_server is not None and trunk_server.username:
            repos_by_sftp_user[trunk_server.username] = match.group(1)

    site_urls: Dict[str, Optional[str]] = {repo: None for repo in repos_by_sftp_user.values()}
    if not account_email:
        return site_urls

    for site in pressable.list_sites():
        sftp_user = pressable.get_sftp_user_by_email(site.id, account_email)
        if sftp_user is not None and sftp_user.username in repos_by_sftp_user:
            site_urls[repos_by_sftp_user[sftp_user.username]] = site.url

    return site_urls


@app.command("rotate-secrets")
def rotate_secrets(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Refresh the deployment secrets on every site repository.

    Sets GH_BOT_TOKEN, DEPLOYHQ_TOKEN and SITE_URL_TRUNK on each repository
    deployed through DeployHQ.
    """
    settings = get_settings()
    github = connect(GitHubClient)
    deployhq = connect(DeployHQClient)
    pressable = connect(PressableClient)

    console.print("Getting data from DeployHQ and Pressable.")
    with console.status("[bold green]Matching repositories to sites...", spinner="dots"):
        with command_errors("Failed to map repositories to sites"):
            site_urls = map_repositories_to_site_urls(
                deployhq, pressable, github.owner, settings.pressable_account_email
            )

    confirm_or_abort(f"Update the GitHub secrets on {len(site_urls)} repositories?", yes)

    console.print("Adding secrets to GitHub.")
    for repo, site_url in site_urls.items():
        secrets = {
            "GH_BOT_TOKEN": settings.github_api_token,
            "DEPLOYHQ_TOKEN": settings.deployhq_api_key,
            "SITE_URL_TRUNK": site_url,
        }
        try:
            public_key = github.get_public_key(github.owner, repo)
            for name, value in secrets.items():
                if value:
                    github.update_secret(github.owner, repo, name, value, public_key=public_key)
        except APIError as e:
            console.print(f"❌ [red]Failed to update the secrets of '{repo}', skipping: {e}[/red]")
            continue
        console.print(f"✅ Secrets updated on {repo}.")

    console.print("✅ [green]All done.[/green]")


@app.command("update-repository-secret")
def update_repository_secret(
    repo: str = typer.Argument(..., help="Repository slug, or 'all' for every repository having the secret"),
    name: str = typer.Argument(..., help="Secret name in all caps (e.g., GH_BOT_TOKEN)"),
    value: Optional[str] = typer.Argument(None, help="New value (default: the config value of the same name)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Set an Actions secret on one repository, or refresh it on all of them.

    Examples:
        team51 github update-repository-secret client-name SITE_URL_TRUNK https://example.com
        team51 github update-repository-secret all GH_BOT_TOKEN
    """
    name = name.upper()
    if value is None:
        value = getattr(get_settings(), name.lower(), None)
        if not value:
            fail(f"No value given and no config value named {name} found.")

    github = connect(GitHubClient)

    update_all = is_case_insensitive_match(repo, "all")
    if update_all:
        with command_errors("Failed to retrieve repositories"):
            repositories = [r.name for r in github.iter_org_repositories(github.owner) if not r.archived]
        confirm_or_abort(f"Update the {name} secret on ALL repositories that have it?", yes)
    else:
        with command_errors("Failed to look up the repository"):
            if github.get_repository(github.owner, repo) is None:
                fail(f"Repository {repo} not found.")
        repositories = [repo]
        confirm_or_abort(f"Update the {name} secret on {repo}?", yes)

    failures = 0
    for repository in repositories:
        try:
            if update_all and name not in {s.name for s in github.list_secrets(github.owner, repository)}:
                logger.info(f"Secret {name} not found on {repository}, skipping")
                continue
            github.update_secret(github.owner, repository, name, value)
        except APIError as e:
            failures += 1
            console.print(f"❌ [red]Failed to update secret {name} on {repository}: {e}[/red]")
            continue
        console.print(f"✅ [green]Updated secret {name} on {repository}.[/green]")

    if failures and not update_all:
        raise typer.Exit(1)


@app.command("triage")
def triage():
    """
    List the DevQueue issues waiting for triage, soonest due first.

    Reads the ProjectV2 board set as github_devqueue_project_id.
    """
    settings = get_settings()
    if not settings.github_devqueue_project_id:
        fail("github_devqueue_project_id not set in config.")

    github = connect(GitHubClient)
    console.print("Grabbing the DevQueue items...")
    with command_errors("Failed to read the DevQueue board"):
        items = list(github.iter_project_items(settings.github_devqueue_project_id))

    for label, status in (
        ("Triage", TRIAGE_STATUS),
        ("In Progress", IN_PROGRESS_STATUS),
        ("Waiting Feedback", WAITING_FEEDBACK_STATUS),
    ):
        count = sum(1 for item in items if item_has_status(item, status))
        console.print(f'"{label}" currently has {count} cards.')
    console.print()

    issues = [triage_issue_from_item(item) for item in items if item_has_status(item, TRIAGE_STATUS)]
    for issue in sorted((issue for issue in issues if issue is not None), key=lambda issue: issue.due_in):
        console.print(Text(issue.markdown(with_labels=True), style="red" if issue.is_late else ""))


@app.command("devqueue-triage-digest")
def devqueue_triage_digest():
    """
    List the issues in the DevQueue triage column due within two days.

    Reads the classic project column set as github_devqueue_triage_column.
    """
    settings = get_settings()
    if not settings.github_devqueue_triage_column:
        fail("github_devqueue_triage_column not set in config.")

    github = connect(GitHubClient)
    console.print("Grabbing the triage column items...")
    with command_errors("Failed to read the triage column"):
        cards = github.list_project_column_cards(settings.github_devqueue_triage_column)
        console.print(f"Triage currently has {len(cards)} cards.")
        issues = [github.get_issue_by_url(card.content_url) for card in cards if card.content_url]

    urgent = urgent_issues(issues)
    console.print(f"\nFound {len(urgent)} issues pending triage due in the next few days!")
    for issue in urgent:
        console.print(Text(issue.markdown(), style="red" if issue.due_in < 0 else ""))


def run_git(*args: str, cwd: Path):
    try:
        subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"git {' '.join(args)} failed: {(e.stderr or '').strip()}") from e


def point_servers_to_branch(
    deployhq: DeployHQClient, projects: List[DeployHQProject], repository: GitHubRepository, old: str, new: str
):
    """Switch the DeployHQ servers deploying ``old`` from this repository to ``new``."""
    for project in projects:
        if project.repository is None or project.repository.url != repository.ssh_url:
            continue
        for server in deployhq.list_servers(project.permalink):
            if server.branch != old and (server.branch or server.preferred_branch != old):
                continue
            deployhq.update_server(project.permalink, server.identifier, {"name": server.name, "branch": new})
            console.print(f"  ✅ Server {server.name} of {project.name} now deploys {new}.")


def rename_default_branch(github: GitHubClient, repository: GitHubRepository, old: str, new: str, workdir: Path):
    """
    Push ``new`` from ``old``, keep ``old`` as the archive/default-branch
    tag and make ``new`` the protected default branch.
    """
    console.print(f"Cloning {repository.full_name}.")
    run_git("clone", repository.clone_url or repository.ssh_url, repository.name, cwd=workdir)
    checkout = workdir / repository.name
    run_git("checkout", "-b", new, old, cwd=checkout)
    run_git("tag", "archive/default-branch", old, cwd=checkout)
    run_git("push", "-u", "origin", new, cwd=checkout)
    run_git("push", "origin", "archive/default-branch", cwd=checkout)

    github.update_repository(github.owner, repository.name, {"name": repository.name, "default_branch": new})
    github.add_branch_protection(github.owner, repository.name, new)
    console.print(f"✅ [green]{repository.full_name} now defaults to {new}.[/green]")


def rename_branches(
    old_branch: str = typer.Option(..., "--old-branch-name", help="Current default branch (e.g., master)"),
    new_branch: str = typer.Option(..., "--new-branch-name", help="New default branch (e.g., trunk)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Rename the default branch of the organization's repositories and point
    their DeployHQ servers to the new branch.

    Example:
        team51 rename-branches --old-branch-name master --new-branch-name trunk
    """
    github = connect(GitHubClient)
    deployhq = connect(DeployHQClient)
    confirm_or_abort(f"Rename {old_branch} to {new_branch} on every {github.owner} repository?", yes)

    console.print("Retrieving all projects from DeployHQ.")
    with command_errors("Failed to list the DeployHQ projects"):
        projects = deployhq.list_projects()
    console.print("Retrieving all repositories from the GitHub organization.")
    with command_errors("Failed to list the repositories"):
        repositories = github.list_org_repositories(github.owner)
    if not repositories:
        fail("Failed to retrieve repositories.")

    with tempfile.TemporaryDirectory(prefix="team51-") as workdir:
        for repository in repositories:
            with site_errors(f"Failed to rename {old_branch} on {repository.full_name}"):
                point_servers_to_branch(deployhq, projects, repository, old_branch, new_branch)
                if repository.archived or repository.default_branch != old_branch:
                    continue
                rename_default_branch(github, repository, old_branch, new_branch, Path(workdir))


def onboard_collaborator(
    email: str = typer.Option(..., "--email", prompt="Collaborator's email", help="Email of the collaborator"),
    github_user: str = typer.Option(..., "--github", prompt="Collaborator's GitHub username", help="GitHub username"),
    github_team: str = typer.Option(
        ..., "--github-team", prompt=f"GitHub team ({', '.join(ACCESS_LEVELS)})", help="triage, deploy or admin"
    ),
    pressable_sites: bool = typer.Option(
        False, "--pressable", help="Also add the collaborator to every Pressable site"
    ),
):
    """
    Add a collaborator to the organization's GitHub team and, optionally,
    to every Pressable site.

    Example:
        team51 onboard-collaborator --email jo@example.com --github jo --github-team deploy --pressable
    """
    if not validate_email(email):
        fail(f"Invalid email {email}.")
    with command_errors("Invalid input"):
        github_team = validate_enum(github_team, ACCESS_LEVELS, "github-team")

    github = connect(GitHubClient)
    console.print(f"Pulling the list of GitHub repositories for {github.owner}...")
    with command_errors("Failed to list the repositories"):
        repositories = github.list_org_repositories(github.owner)
    console.print(f"Found {len(repositories)} repositories.")

    with command_errors(f"Failed to add {github_user} to {github_team}"):
        github.add_team_membership(github.owner, github_team, github_user)
    console.print(f"✅ [green]{github_user} added to the {github_team} team.[/green]")

    if pressable_sites:
        pressable = connect(PressableClient)
        with command_errors("Failed to list the Pressable sites"):
            sites = pressable.list_sites()
        added = 0
        for site in track(sites, description="Adding the collaborator to Pressable sites", console=console):
            with site_errors(f"Failed to add {email} to {site.label}"):
                if pressable.create_collaborator(email, site.id, default_collaborator_roles(site)) is not None:
                    added += 1
        console.print(f"✅ [green]{email} added to {added} of {len(sites)} Pressable sites.[/green]")

    console.print("✅ [bold green]All done![/bold green]")
