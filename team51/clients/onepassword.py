"""
1Password CLI wrapper

Shells out to the ``op`` executable (1Password CLI v2) and parses its JSON
output. The CLI must already be signed in; session handling is left to
``op`` itself or passed through the ``session`` global flag.

Reference: https://developer.1password.com/docs/cli/reference
"""

import hashlib
import json
import logging
import subprocess
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from team51.pyd_models.misc_models import OnePasswordAccount, OnePasswordItem
from team51.utils import extract_host, is_case_insensitive_match

logger = logging.getLogger(__name__)

GLOBAL_VALUE_FLAGS = ("account", "config", "encoding", "session")
GLOBAL_SWITCH_FLAGS = ("cache", "debug", "iso-timestamps")


class OnePasswordError(Exception):
    """Raised when the op CLI fails or returns something that isn't JSON."""

    def __init__(self, command: Sequence[str], message: str, returncode: Optional[int] = None):
        self.command = list(command)
        self.message = message
        self.returncode = returncode
        super().__init__(f"1Password CLI Error ({' '.join(self.command[:3])}): {message}")


def build_flags(flags: Mapping[str, object], value_flags: Sequence[str]) -> List[str]:
    """
    Turn a flags mapping into CLI arguments.

    Flags named in ``value_flags`` take a value (lists are comma-joined);
    every other flag is a switch added when truthy.
    """
    args: List[str] = []
    for flag, value in flags.items():
        if value is None or value is False:
            continue
        if flag in value_flags:
            if isinstance(value, (list, tuple, set)):
                value = ",".join(str(v) for v in value)
            args.extend([f"--{flag}", str(value)])
        elif value:
            args.append(f"--{flag}")
    return args


def is_item_url_match(item: OnePasswordItem, url: str) -> bool:
    """True if any of the item's URLs points at the same host as ``url``."""
    match_host = extract_host(url)
    return any(is_case_insensitive_match(match_host, extract_host(item_url.href)) for item_url in item.urls)


class OnePasswordCLI:
    """
    Thin wrapper around ``op``.

    Usage:
        op = OnePasswordCLI()
        logins = op.search_items(lambda item: is_item_url_match(item, "example.com"),
                                 categories="login", tags="team51-cli")
        op.edit_item(logins[0].id, {"password": "..."})
    """

    def __init__(
        self,
        executable: str = "op",
        global_flags: Optional[Dict[str, object]] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.executable = executable
        self.global_flags = {
            key: value for key, value in (global_flags or {}).items() if key in GLOBAL_VALUE_FLAGS + GLOBAL_SWITCH_FLAGS
        }
        self.runner = runner
        self._search_cache: Dict[str, List[OnePasswordItem]] = {}

    def _run(self, args: List[str], expect_json: bool = True):
        command = [self.executable, *args, *build_flags(self.global_flags, GLOBAL_VALUE_FLAGS)]
        if expect_json:
            command.extend(["--format", "json"])

        logger.debug(f"1Password CLI: {' '.join(command[:4])}")
        try:
            result = self.runner(command, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise OnePasswordError(command, f"{self.executable} executable not found") from e

        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "Unknown error"
            logger.error(f"❌ 1Password CLI error: {message}")
            raise OnePasswordError(command, message, result.returncode)

        if not expect_json:
            return None

        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise OnePasswordError(command, f"Invalid JSON output: {e}") from e

    def list_accounts(self) -> List[OnePasswordAccount]:
        return [OnePasswordAccount(**account) for account in self._run(["account", "list"]) or []]

    def list_items(
        self,
        categories=None,
        tags=None,
        vault: Optional[str] = None,
        favorite: bool = False,
        include_archive: bool = False,
    ) -> List[OnePasswordItem]:
        flags = {
            "categories": categories,
            "tags": tags,
            "vault": vault,
            "favorite": favorite,
            "include-archive": include_archive,
        }
        args = ["item", "list", *build_flags(flags, ("categories", "tags", "vault"))]
        return [OnePasswordItem(**item) for item in self._run(args) or []]

    def search_items(
        self,
        predicate: Callable[[OnePasswordItem], bool],
        cache: bool = True,
        **flags,
    ) -> List[OnePasswordItem]:
        """
        Filter the items of a listing with ``predicate``.

        Listings are cached per distinct set of flags for the lifetime of
        this object; pass ``cache=False`` to force a fresh listing.
        """
        key = hashlib.sha256(
            json.dumps({**flags, **self.global_flags}, sort_keys=True, default=str).encode("utf-8")
        ).hexdigest()

        if not cache or key not in self._search_cache:
            self._search_cache[key] = self.list_items(**flags)

        return [item for item in self._search_cache[key] if predicate(item)]

    def get_item(self, item_id: str, vault: Optional[str] = None) -> OnePasswordItem:
        args = ["item", "get", item_id, *build_flags({"vault": vault}, ("vault",))]
        return OnePasswordItem(**self._run(args))

    def edit_item(
        self,
        item_id: str,
        fields: Optional[Mapping[str, str]] = None,
        title: Optional[str] = None,
        url: Optional[str] = None,
        vault: Optional[str] = None,
        dry_run: bool = False,
    ) -> Optional[OnePasswordItem]:
        flags = {"title": title, "url": url, "vault": vault, "dry-run": dry_run}
        args = ["item", "edit", item_id, *build_flags(flags, ("title", "url", "vault"))]
        args.extend(f"{field}={value}" for field, value in (fields or {}).items())

        item = self._run(args)
        self._search_cache.clear()
        return OnePasswordItem(**item) if item else None

    def delete_item(self, item_id: str, archive: bool = False, vault: Optional[str] = None) -> None:
        flags = {"archive": archive, "vault": vault}
        self._run(["item", "delete", item_id, *build_flags(flags, ("vault",))], expect_json=False)
        self._search_cache.clear()
