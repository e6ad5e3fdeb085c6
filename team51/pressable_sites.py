"""
Pressable site lookups and the related-sites tree.

Development and temporary sites are clones of a production site, linked
through ``clonedFromId``. The tree groups a production site and all of its
descendants by clone depth: level 0 is production, level 1 holds direct
clones (one of which is normally the ``-development`` main dev site), and
so on.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel
from rich import box
from rich.table import Table

from team51.clients.pressable_client import PressableClient
from team51.pyd_models.pressable_models import PressableSite
from team51.utils import normalize_site_input

logger = logging.getLogger(__name__)

DEVELOPMENT_SUFFIX = "-development"
PRODUCTION_SUFFIX = "-production"

DEFAULT_COLLABORATOR_ROLES = [
    "clone_site",
    "sftp_access",
    "download_backups",
    "reset_collaborator_password",
    "manage_performance",
    "php_my_admin_access",
]


class SiteNode(BaseModel):
    """A site in the related-sites tree, plus per-run bookkeeping."""
    site: PressableSite
    temporary: bool = True
    new_password: Optional[str] = None


SitesTree = Dict[int, Dict[int, SiteNode]]


def resolve_site(client: PressableClient, value: str) -> Optional[PressableSite]:
    """Find a site given its numeric ID or its URL."""
    value = str(value).strip()
    if value.isdigit():
        return client.get_site(int(value))

    url = normalize_site_input(value)
    site = client.get_site_by_url(url)
    if site is None:
        site = client.get_site_by_url(url, exact=False)

    if site is not None:
        logger.info(f"🔍 Pressable site found: {site.label}")
    return site


def find_production_site(client: PressableClient, site: PressableSite) -> PressableSite:
    """Climb the clone chain up to the root site."""
    production_site = site
    while production_site.cloned_from_id:
        parent = client.get_site(production_site.cloned_from_id)
        if parent is None:
            # The original site must have been deleted.
            break
        production_site = parent
    return production_site


def build_related_sites_tree(root: PressableSite, all_sites: List[PressableSite]) -> SitesTree:
    """Group ``root`` and its clones by depth, breadth-first."""
    tree: SitesTree = {0: {root.id: SiteNode(site=root, temporary=False)}}

    level = 1
    while True:
        parents = tree[level - 1]
        nodes = {}
        for site in all_sites:
            if site.cloned_from_id in parents and site.id not in parents:
                is_main_dev = level == 1 and site.name.endswith(DEVELOPMENT_SUFFIX)
                nodes[site.id] = SiteNode(site=site, temporary=not is_main_dev)

        if not nodes:
            return tree
        tree[level] = nodes
        level += 1


def find_main_dev_node(tree: SitesTree) -> Optional[SiteNode]:
    return next((node for node in tree.get(1, {}).values() if not node.temporary), None)


def flatten_tree(tree: SitesTree) -> List[PressableSite]:
    return [node.site for level in sorted(tree) for node in tree[level].values()]


def is_staging_site(site: PressableSite) -> bool:
    return site.staging or DEVELOPMENT_SUFFIX in site.url


def default_collaborator_roles(site: PressableSite) -> List[str]:
    """Roles handed to new collaborators; staging sites also get WP access."""
    roles = list(DEFAULT_COLLABORATOR_ROLES)
    if is_staging_site(site):
        roles.append("wp_access")
    return roles


def deployhq_permalink_for_site(client: PressableClient, site: Optional[PressableSite]) -> Optional[str]:
    """
    Work out the permalink of the DeployHQ project that deploys to ``site``.

    Project permalinks are the production site name without the
    ``-production`` suffix. Clones are named ``<project>-development`` or
    ``<project>-development-<label>``; older labelled clones may lack the
    suffix, in which case the parent site (or a manually fixed display
    name) is used instead.
    """
    if site is None or not site.name:
        return None

    project_name = site.name
    if DEVELOPMENT_SUFFIX in project_name:
        project_name = project_name.split(DEVELOPMENT_SUFFIX, 1)[0]
    elif site.cloned_from_id:
        project_name = deployhq_permalink_for_site(client, client.get_site(site.cloned_from_id))
        if project_name is None:
            return None
    elif site.display_name and DEVELOPMENT_SUFFIX in site.display_name:
        project_name = site.display_name.split(DEVELOPMENT_SUFFIX, 1)[0]

    return project_name.split(PRODUCTION_SUFFIX, 1)[0]


def render_sites_tree(tree: SitesTree, include_passwords: bool = False) -> Table:
    """Build the "Related Pressable sites" table, one section per level."""
    table = Table(title="Related Pressable sites", box=box.ROUNDED, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Level", justify="right")
    table.add_column("Parent ID")
    if include_passwords:
        table.add_column("New password")
        production_password = next(iter(tree[0].values())).new_password or "--"

    for level in sorted(tree):
        for node in tree[level].values():
            is_main_dev = level == 1 and not node.temporary
            row = [
                str(node.site.id),
                node.site.name + (" [green](main dev)[/green]" if is_main_dev else ""),
                node.site.url,
                str(level),
                str(node.site.cloned_from_id or "--"),
            ]
            if include_passwords:
                password = node.new_password or "--"
                row.append(password if password == production_password else f"[red]{password}[/red]")
            table.add_row(*row)

        if level < len(tree) - 1:
            table.add_section()

    return table
