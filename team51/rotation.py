"""
SFTP and WordPress password rotation for Pressable sites.

Both rotators print progress through a rich ``Console`` and return plain
result objects, so the commands decide how to summarise the run.
"""

import logging
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel
from rich.console import Console

from team51.clients.base import APIError
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.onepassword import OnePasswordCLI, OnePasswordError, is_item_url_match
from team51.clients.pressable_client import PressableClient
from team51.clients.wpcom_client import WPCOMClient
from team51.pressable_sites import (
    SitesTree,
    build_related_sites_tree,
    deployhq_permalink_for_site,
    find_main_dev_node,
)
from team51.pyd_models.deployhq_models import DeployHQProject
from team51.pyd_models.misc_models import OnePasswordItem
from team51.pyd_models.pressable_models import PressableSFTPUser, PressableSite
from team51.utils import generate_random_password, is_case_insensitive_match

logger = logging.getLogger(__name__)

CONCIERGE_EMAIL = "concierge@wordpress.com"
CONCIERGE_USERNAME = "wpconcierge"
DRY_RUN_PASSWORD = "********"


class SFTPRotationResult(BaseModel):
    site: PressableSite
    user: PressableSFTPUser
    password: Optional[str] = None
    deployhq_updated: Optional[bool] = None

    @property
    def rotated(self) -> bool:
        return self.password is not None


class SFTPPasswordRotator:
    """
    Reset an SFTP user's password and keep DeployHQ in sync.

    DeployHQ deploys with the site owner's SFTP credentials, so rotating
    the owner's password also updates the matching DeployHQ server.
    """

    def __init__(
        self,
        pressable: PressableClient,
        deployhq: DeployHQClient,
        dry_run: bool = False,
        permalink_prompt: Optional[Callable[[PressableSite], Optional[str]]] = None,
        console: Optional[Console] = None,
    ):
        self.pressable = pressable
        self.deployhq = deployhq
        self.dry_run = dry_run
        self.permalink_prompt = permalink_prompt
        self.console = console or Console()

    def rotate(self, site: PressableSite, sftp_user: PressableSFTPUser) -> SFTPRotationResult:
        result = SFTPRotationResult(site=site, user=sftp_user)
        self.console.print(
            f"[bold magenta]Rotating the SFTP password of {sftp_user.username} "
            f"(ID {sftp_user.id}, email {sftp_user.email}) on {site.label}.[/bold magenta]"
        )

        if self.dry_run:
            logger.info("Dry run: SFTP user password rotation skipped")
            result.password = DRY_RUN_PASSWORD
        else:
            try:
                result.password = self.pressable.reset_sftp_password(site.id, sftp_user.username)
            except APIError as e:
                self.console.print(f"❌ [red]Failed to reset SFTP user password: {e}[/red]")
                return result

        self.console.print("✅ [green]SFTP user password rotated.[/green]")
        if sftp_user.owner:
            logger.debug(f"New SFTP user password: {result.password}")
        else:
            self.console.print(f"New SFTP user password: [bold green]{result.password}[/bold green]")
            logger.info("SFTP user is not the site owner, no DeployHQ update required")
            return result

        self.console.print("SFTP user is the site owner, updating the DeployHQ server configuration...")
        result.deployhq_updated = self.update_deployhq_server(site, sftp_user.username, result.password)
        if result.deployhq_updated:
            self.console.print("✅ [green]DeployHQ project server configuration updated.[/green]")
        else:
            self.console.print(
                f"If needed, please update the DeployHQ server password manually to: {result.password}"
            )
        return result

    def get_deployhq_project(self, site: PressableSite) -> Optional[DeployHQProject]:
        permalink = deployhq_permalink_for_site(self.pressable, site)
        logger.debug(f"DeployHQ project permalink: {permalink}")

        project = self.deployhq.get_project(permalink) if permalink else None
        if project is None and self.permalink_prompt is not None:
            self.console.print(f"❌ [red]Failed to retrieve DeployHQ project {permalink}.[/red]")
            permalink = self.permalink_prompt(site)
            if permalink:
                project = self.deployhq.get_project(permalink.strip().replace(" ", "-"))
        return project

    def update_deployhq_server(self, site: PressableSite, sftp_username: str, password: str) -> bool:
        try:
            project = self.get_deployhq_project(site)
            if project is None:
                self.console.print("❌ [red]DeployHQ project not found.[/red]")
                return False

            servers = self.deployhq.list_servers(project.permalink)
            server = next((s for s in servers if s.username == sftp_username), None)
            if server is None:
                self.console.print("❌ [red]Failed to find DeployHQ server for site.[/red]")
                return False
            logger.debug(f"DeployHQ project server found: {server.name} ({server.identifier})")

            if self.dry_run:
                logger.info("Dry run: DeployHQ project server password update skipped")
                return True

            # DeployHQ ignores a bare password change; the protocol type must come with it.
            self.deployhq.update_server(
                project.permalink, server.identifier, {"protocol_type": "ssh", "password": password}
            )
            return True
        except APIError as e:
            self.console.print(f"❌ [red]Failed to update DeployHQ project server password: {e}[/red]")
            return False


class WPRotationReport(BaseModel):
    tree: SitesTree
    success: bool
    onepassword_updated: bool = False


class WPPasswordRotator:
    """
    Rotate a WordPress user's password on a production site and its clones.

    The WordPress.com/Jetpack API is tried first since it can impose a
    given password. Pressable can only generate new passwords, so it is
    used as a fallback when no specific password is required or when
    ``force`` is on.
    """

    def __init__(
        self,
        pressable: PressableClient,
        wpcom: WPCOMClient,
        onepassword: Optional[OnePasswordCLI],
        email: str,
        force: bool = False,
        dry_run: bool = False,
        console: Optional[Console] = None,
    ):
        self.pressable = pressable
        self.wpcom = wpcom
        self.onepassword = onepassword
        self.email = email
        self.force = force
        self.dry_run = dry_run
        self.console = console or Console()

    def change_password(self, site: PressableSite, password: Optional[str] = None) -> Tuple[Optional[bool], Optional[str]]:
        """
        Set (or reset) the user's password on one site.

        Returns (result, password). ``result`` is None when no attempt could
        be made because the user wasn't found anywhere.
        """
        self.console.print(f"Changing password on {site.label}")
        result: Optional[bool] = None
        new_password = password or generate_random_password()

        try:
            wpcom_user = self.wpcom.get_site_user_by_email(site.url, self.email)
        except APIError as e:
            logger.debug(f"WPCOM user lookup failed on {site.url}: {e}")
            wpcom_user = None

        if wpcom_user is not None:
            logger.info(f"Setting the WP password for {wpcom_user.name} (ID {wpcom_user.id}) via the WPCOM API")
            if self.dry_run:
                result = True
            else:
                try:
                    result = self.wpcom.set_user_password(site.url, wpcom_user.id, new_password)
                except APIError as e:
                    logger.warning(f"⚠️  WPCOM password update failed on {site.url}: {e}")
                    result = False
        else:
            logger.info(f"WP user {self.email} not found via the WPCOM API on {site.url}")

        if result is not True and (password is None or self.force):
            result, new_password = self._reset_via_pressable(site, new_password)

        return result, (new_password if result else password)

    def _reset_via_pressable(self, site: PressableSite, fallback_password: str) -> Tuple[Optional[bool], str]:
        sftp_user = self.pressable.get_sftp_user_by_email(site.id, self.email)
        if sftp_user is not None and sftp_user.owner:
            logger.info(f"Resetting the WP password of site owner {sftp_user.username} via the Pressable API")
            if self.dry_run:
                return True, generate_random_password()
            try:
                return True, self.pressable.reset_owner_wp_password(site.id)
            except APIError as e:
                logger.warning(f"⚠️  Pressable owner password reset failed on {site.url}: {e}")
                return False, fallback_password

        collaborator = self.pressable.get_collaborator_by_email(site.id, self.email)
        if collaborator is None:
            logger.info(f"WP user {self.email} not found on {site.label} via the Pressable API")
            return None, fallback_password

        logger.info(f"Resetting the WP password of collaborator {collaborator.wp_username} via the Pressable API")
        if self.dry_run:
            return True, generate_random_password()
        try:
            return True, self.pressable.reset_collaborator_wp_password(site.id, collaborator.id)
        except APIError as e:
            logger.warning(f"⚠️  Pressable collaborator password reset failed on {site.url}: {e}")
            return False, fallback_password

    def rotate_tree(self, production_site: PressableSite) -> WPRotationReport:
        """
        Rotate on the main dev site, then production, then every other clone.

        Production is given the main dev site's new password and the other
        clones re-use the production one. If production fails the run stops
        there and 1Password is left untouched.
        """
        tree = build_related_sites_tree(production_site, self.pressable.list_sites())
        production_node = tree[0][production_site.id]

        shared_password: Optional[str] = None
        main_dev_node = find_main_dev_node(tree)
        if main_dev_node is not None:
            result, password = self.change_password(main_dev_node.site)
            if result:
                self.console.print("✅ [green]Main dev site WP password rotated.[/green]")
                main_dev_node.new_password = shared_password = password
            else:
                self.console.print("❌ [red]Main dev site WP password failed to rotate.[/red]")
        else:
            self.console.print("[yellow]No main dev site found.[/yellow]")

        result, password = self.change_password(production_site, shared_password)
        if not result:
            self.console.print(
                "❌ [red]Production site WP password failed to rotate. Here is a summary of rotated passwords:[/red]"
            )
            return WPRotationReport(tree=tree, success=False)

        self.console.print("✅ [green]Production site WP password rotated.[/green]")
        production_node.new_password = password

        for level in sorted(tree):
            if level == 0:
                continue
            for node in tree[level].values():
                if node is main_dev_node:
                    continue
                result, password = self.change_password(node.site, production_node.new_password)
                if result:
                    self.console.print(f"✅ [green]{node.site.display_name or node.site.name} WP password rotated.[/green]")
                    node.new_password = password

        updated = self.update_onepassword_login(production_site, production_node.new_password)
        return WPRotationReport(tree=tree, success=True, onepassword_updated=updated)

    def find_onepassword_logins(self, production_site: PressableSite) -> List[OnePasswordItem]:
        candidates = self.onepassword.search_items(
            lambda item: is_item_url_match(item, production_site.url), categories="login"
        )

        logins = []
        for candidate in candidates:
            login = self.onepassword.get_item(candidate.id)
            username = login.username or ""
            if is_case_insensitive_match(self.email, username):
                logins.append(login)
            elif is_case_insensitive_match(self.email, CONCIERGE_EMAIL) and is_case_insensitive_match(
                username, CONCIERGE_USERNAME
            ):
                logins.append(login)
        return logins

    def update_onepassword_login(self, production_site: PressableSite, password: str) -> bool:
        if self.onepassword is None:
            return False

        self.console.print(f"Updating 1Password production login for {self.email} on {production_site.label}.")
        try:
            logins = self.find_onepassword_logins(production_site)
        except OnePasswordError as e:
            logger.debug(f"1Password lookup failed: {e}")
            self.console.print("❌ [red]1Password logins could not be retrieved.[/red]")
            return False

        if len(logins) > 1:
            self.console.print(f"❌ [red]Multiple 1Password logins found for {self.email} on {production_site.label}.[/red]")
            return False
        if not logins:
            self.console.print(f"❌ [red]1Password login not found for {self.email} on {production_site.label}.[/red]")
            return False

        if self.dry_run:
            logger.info("Dry run: 1Password production login update skipped")
        else:
            try:
                self.onepassword.edit_item(
                    logins[0].id,
                    {"password": password},
                    title=production_site.display_name or production_site.name,
                )
            except OnePasswordError as e:
                self.console.print(f"❌ [red]1Password production login could not be updated: {e}[/red]")
                return False

        self.console.print("✅ [green]1Password production login updated.[/green]")
        return True
