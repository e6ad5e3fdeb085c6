"""
Naming conventions, zones and labels shared by the provisioning commands.
"""

import time
from typing import List, NamedTuple, Optional
from urllib.parse import urlparse

from team51.pyd_models.wpcom_models import WPCOMSite


class Zone(NamedTuple):
    deployhq_zone_id: int
    datacenter_code: str


DEPLOYHQ_ZONE_EUROPE = 3  # UK
DEPLOYHQ_ZONE_US_EAST = 6
DEPLOYHQ_ZONE_US_WEST = 9

PRESSABLE_DATACENTER_EUROPE = "AMS"
PRESSABLE_DATACENTER_US_CENTRAL = "DFW"
PRESSABLE_DATACENTER_US_EAST = "DCA"
PRESSABLE_DATACENTER_US_WEST = "BUR"

DEFAULT_ZONE = Zone(DEPLOYHQ_ZONE_US_EAST, PRESSABLE_DATACENTER_US_CENTRAL)

ZONE_ALIASES = {
    "us": DEFAULT_ZONE,
    "uscentral": DEFAULT_ZONE,
    "eu": Zone(DEPLOYHQ_ZONE_EUROPE, PRESSABLE_DATACENTER_EUROPE),
    "eur": Zone(DEPLOYHQ_ZONE_EUROPE, PRESSABLE_DATACENTER_EUROPE),
    "europe": Zone(DEPLOYHQ_ZONE_EUROPE, PRESSABLE_DATACENTER_EUROPE),
    "uswest": Zone(DEPLOYHQ_ZONE_US_WEST, PRESSABLE_DATACENTER_US_WEST),
    "west": Zone(DEPLOYHQ_ZONE_US_WEST, PRESSABLE_DATACENTER_US_WEST),
    "useast": Zone(DEPLOYHQ_ZONE_US_EAST, PRESSABLE_DATACENTER_US_EAST),
    "east": Zone(DEPLOYHQ_ZONE_US_EAST, PRESSABLE_DATACENTER_US_EAST),
}

REPOSITORY_TYPES = ("project", "plugin", "issues")

REPOSITORY_LABELS = [
    {"name": "content", "description": "Any cms tasks not handled in code", "color": "006b75"},
    {"name": "design", "description": "Design-related tasks", "color": "d4c5f9"},
    {"name": "in progress", "description": "A work-in-progress - not ready for merge!", "color": "f9c581"},
    {"name": "high priority", "color": "d93f0b"},
    {"name": "launch task", "description": "To be completed on launch day", "color": "c2e0c6"},
    {"name": "low priority", "color": "f9d0c4"},
    {"name": "medium priority", "color": "fbca04"},
    {"name": "needs review", "description": "Pre-merge sanity check", "color": "ff9515"},
    {"name": "pending confirmation", "description": "Waiting for approval from client or partner", "color": "f799c9"},
    {"name": "plugin functionality", "color": "eb6420"},
    {"name": "ready to close", "description": "No further action needed.", "color": "128a0c"},
    {"name": "ready to merge", "description": "Approved and ready to launch!", "color": "70ea76"},
    {"name": "ready to revert", "description": "Feature abandoned. Remove from code base", "color": "cc317c"},
    {"name": "theme functionality", "color": "f7c6c7"},
]

LABELS_TO_DELETE = ("good first issue", "help wanted", "invalid")

IGNORED_SITE_URL_FRAGMENTS = (
    "staging",
    "jurassic",
    "wpengine",
    "wordpress",
    "develop",
    "com/",
    "org/",
    "mdrovdahl",
)


def resolve_zone(value: Optional[str]) -> Zone:
    """
    Map a user-supplied zone name ("EU", "us-west", "US East", ...) onto the
    DeployHQ zone and Pressable datacenter. Unknown or empty values fall
    back to US Central.
    """
    if not value:
        return DEFAULT_ZONE
    key = value.lower().replace(" ", "").replace("-", "")
    return ZONE_ALIASES.get(key, DEFAULT_ZONE)


def production_site_name(name: str) -> str:
    return f"{name}-production"


def development_site_name(production_name: str) -> str:
    if "-production" in production_name:
        return production_name.replace("-production", "-development")
    return production_name.replace("-development", "") + "-development"


def temporary_clone_name(development_name: str, label: Optional[str] = None, now: Optional[float] = None) -> str:
    """
    Name a throwaway clone: ``<project>-<label>`` when labelled, otherwise
    ``<project>-development-<unix time>``.
    """
    if label:
        return f"{development_name.replace('-development', '')}-{label}"
    return f"{development_name}-{int(now if now is not None else time.time())}"


def project_name_from_site_name(site_name: str) -> str:
    return site_name.replace("-production", "").replace("-development", "")


def project_name_from_url(url: str) -> str:
    """First label of the site's host: ``https://acme.wpcomstaging.com`` gives ``acme``."""
    host = urlparse(url if "//" in url else f"//{url}").hostname or url
    return host.split(".", 1)[0]


def classify_wpcom_site(site: WPCOMSite) -> str:
    if site.is_wpcom_atomic:
        return "Atomic"
    if site.jetpack:
        return "Pressable"
    return "Simple"


def is_ignored_site_url(url: str) -> bool:
    return any(fragment in url for fragment in IGNORED_SITE_URL_FRAGMENTS)


def eval_is_coming_soon(site: WPCOMSite) -> str:
    return "is_coming_soon" if site.is_coming_soon else ""


def filter_reportable_sites(sites: List[WPCOMSite]) -> List[WPCOMSite]:
    """Public sites that aren't staging, sandbox or third-party hosted."""
    return [site for site in sites if not is_ignored_site_url(site.url) and not site.is_private]
