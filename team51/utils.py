"""
Small helpers shared by the clients and the commands.
"""

import re
import secrets
import string
from typing import Optional, Sequence
from urllib.parse import urlparse

PASSWORD_SPECIAL_CHARS = "!@#$%^&*()"

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def generate_random_password(length: int = 24, special_chars: bool = True) -> str:
    """
    Generate a random password.

    Args:
        length: Number of characters
        special_chars: Whether to include !@#$%^&*() in the alphabet
    """
    alphabet = string.ascii_lowercase + string.ascii_uppercase + string.digits
    if special_chars:
        alphabet += PASSWORD_SPECIAL_CHARS
    return "".join(secrets.choice(alphabet) for _ in range(length))


def is_case_insensitive_match(first: str, second: str) -> bool:
    return first.casefold() == second.casefold()


def slugify(value: str) -> str:
    """Lowercase, whitespace to hyphens, strip anything but [a-z0-9-], collapse hyphens."""
    value = value.strip().lower()
    value = re.sub(r"\s+", "-", value)
    value = re.sub(r"[^a-z0-9-]", "", value)
    return re.sub(r"-+", "-", value)


def extract_host(value: str) -> str:
    """
    Reduce a URL-ish string to its host.

    "https://example.com/wp-admin" and "example.com/wp-login.php" both
    become "example.com".
    """
    value = value.strip()
    if "http" in value:
        return urlparse(value).hostname or ""
    return value.split("/", 1)[0]


def normalize_site_input(value: str) -> str:
    """Site arguments accept an ID, a host name, or a full URL."""
    value = value.strip()
    if "http" in value:
        host = urlparse(value).hostname
        if not host:
            raise ValueError(f"Invalid URL provided: {value}")
        return host
    return value


def normalize_domain_input(value: str) -> Optional[str]:
    """Return the lowercased domain, or None if the input doesn't look like one."""
    value = value.strip()
    if "http" in value:
        value = urlparse(value).hostname or ""
    elif value.find(".", 1) == -1:
        return None
    return value.lower() or None


def validate_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def validate_enum(value: Optional[str], valid: Sequence[str], name: str) -> Optional[str]:
    """Return ``value`` if it is one of ``valid`` (or None); raise ValueError otherwise."""
    if value is None:
        return None
    if value not in valid:
        raise ValueError(f"Invalid value for input '{name}': {value}")
    return value
