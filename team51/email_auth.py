"""
Email authentication checks: whether a site's DNS is served by Automattic
nameservers (so SPF/DKIM/DMARC are managed for it) and whether it relies on
an SMTP plugin instead.
"""

from typing import Iterable, List, Optional, Tuple

from team51.pyd_models.wpcom_models import SitePlugin

AUTOMATTIC_NAMESERVERS = ("wordpress.com", "pressable.com", "openhostingservice.com")
NAMESERVER_NOT_FOUND = "Nameserver Not Found"

SMTP_PLUGINS = (
    "wp-mail-smtp",
    "easy-wp-smtp",
    "post-smtp",
    "mailin",
    "fluent-smtp",
    "gmail-smtp",
    "smtp-mailer",
    "connect-sendgrid-for-emails",
    "mailster-sendgrid",
    "smtp-sendgrid",
    "mailpoet",
    "wp-sendgrid-mailer",
)

IGNORED_DOMAIN_PARTS = (
    "staging",
    "testing",
    "jurassic",
    "wpengine",
    "wordpress",
    "develop",
    "mdrovdahl",
    "/dev.",
    "woocommerce.com",
)


def is_ignored_domain(domain: str) -> bool:
    return any(part in domain for part in IGNORED_DOMAIN_PARTS)


def check_nameservers(dns_records: List[dict]) -> Tuple[bool, str]:
    """
    Return (uses_automattic_nameservers, nameserver).

    When no NS record points at Automattic, the last NS target is reported,
    or "Nameserver Not Found" if there is none.
    """
    last_target = ""
    for record in dns_records:
        if record.get("type") != "NS":
            continue
        last_target = str(record.get("target", ""))
        if any(nameserver in last_target.lower() for nameserver in AUTOMATTIC_NAMESERVERS):
            return True, last_target

    return False, last_target or NAMESERVER_NOT_FOUND


def find_smtp_plugin(plugins: Iterable[SitePlugin]) -> Optional[str]:
    """Slug of the first SMTP plugin installed, active or not."""
    for plugin in plugins:
        if "smtp" in plugin.slug or plugin.slug in SMTP_PLUGINS:
            return plugin.slug
    return None
