"""
Pressable API Client

This client handles all interactions with the Pressable REST API: sites,
clones, SFTP users, collaborators and domains. It takes care of the OAuth
token exchange and keeps the token pair cached on disk between runs.

Reference: https://my.pressable.com/documentation/api/v1
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.pressable_models import (
    PressableCollaborator,
    PressableDomain,
    PressablePHPLogEntry,
    PressableSFTPUser,
    PressableSite,
    PressableTokens,
)
from team51.utils import is_case_insensitive_match

logger = logging.getLogger(__name__)

AUTH_URL = "https://my.pressable.com/auth/token/"
ACCESS_TOKEN_VALIDITY = 59 * 60  # refresh before the one-hour expiry
COLLABORATOR_LOOKUP_RETRIES = 5


class PressableAPIError(APIError):
    """Custom exception for Pressable API errors."""
    provider = "Pressable"


class PressableAuthError(PressableAPIError):
    """Raised when Pressable rejects our credentials."""


class PressableTokenCache:
    """
    Token pair persisted as JSON: {access_token, refresh_token, created_at}.

    The access token is trusted for 59 minutes after it was obtained.
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self.clock = clock

    def load(self) -> Optional[PressableTokens]:
        if not self.path.is_file():
            return None
        try:
            return PressableTokens(**json.loads(self.path.read_text(encoding="utf-8")))
        except (ValueError, TypeError) as e:
            logger.debug(f"Ignoring unreadable Pressable token cache {self.path}: {e}")
            return None

    def get_access_token(self) -> Optional[str]:
        tokens = self.load()
        if tokens is None or tokens.created_at < self.clock() - ACCESS_TOKEN_VALIDITY:
            return None
        return tokens.access_token

    def get_refresh_token(self) -> Optional[str]:
        tokens = self.load()
        return tokens.refresh_token if tokens else None

    def save(self, access_token: str, refresh_token: Optional[str]) -> PressableTokens:
        tokens = PressableTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            created_at=int(self.clock()),
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(tokens.model_dump_json(), encoding="utf-8")
        return tokens


class PressableClient(BaseAPIClient):
    """
    Client for interacting with the Pressable API.

    Every successful response is an envelope ``{"message": ..., "data": ...}``;
    the typed methods return the parsed ``data``.

    Usage:
        client = PressableClient()
        site = client.get_site_by_url("example.com")
        password = client.reset_sftp_password(site.id, "example-user")
    """

    provider = "Pressable"
    error_class = PressableAPIError

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        token_cache: Optional[PressableTokenCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        validate_settings(self.settings, ["pressable_api_app_client_id", "pressable_api_app_client_secret"])

        self.token_cache = token_cache or PressableTokenCache(self.settings.pressable_token_cache_path)
        self.sleep = sleep
        self._access_token: Optional[str] = None
        self._sites_cache: Optional[List[PressableSite]] = None

        super().__init__(
            base_url="https://my.pressable.com/v1",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            http_client=http_client,
            timeout=self.settings.http_timeout,
        )

    # Authentication

    def _request_tokens(self, post_data: Dict[str, str]) -> dict:
        response = self._send(
            "POST",
            AUTH_URL,
            data=post_data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        body = self._decode(response)
        if response.status_code >= 400 or not body.get("access_token"):
            raise PressableAuthError(response.status_code, "Pressable API token could not be retrieved.", AUTH_URL)
        return body

    def _obtain_tokens(self) -> dict:
        logger.info("🔑 Obtaining new Pressable OAuth token.")
        post_data = {
            "client_id": self.settings.pressable_api_app_client_id,
            "client_secret": self.settings.pressable_api_app_client_secret,
        }

        if self.settings.pressable_account_email and self.settings.pressable_account_password:
            post_data.update(
                grant_type="password",
                email=self.settings.pressable_account_email,
                password=self.settings.pressable_account_password,
            )
        else:
            refresh_token = self.token_cache.get_refresh_token() or self.settings.pressable_api_refresh_token
            if not refresh_token:
                raise PressableAuthError(0, "Missing both Pressable credentials and a refresh token.", AUTH_URL)
            post_data.update(grant_type="refresh_token", refresh_token=refresh_token)

        return self._request_tokens(post_data)

    def get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        access_token = self.token_cache.get_access_token()
        if access_token:
            logger.debug("Re-using Pressable OAuth token cached locally.")
        else:
            tokens = self._obtain_tokens()
            access_token = tokens["access_token"]
            try:
                self.token_cache.save(access_token, tokens.get("refresh_token"))
            except OSError as e:
                logger.warning(f"❌ Failed to cache Pressable access tokens: {e}")

        self._access_token = access_token
        return access_token

    @staticmethod
    def generate_refresh_token(
        client_id: str,
        client_secret: str,
        email: str,
        password: str,
        http_client: Optional[httpx.Client] = None,
    ) -> dict:
        """Exchange account credentials for a token pair (used to bootstrap config.json)."""
        post_data = {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "password",
            "email": email,
            "password": password,
        }
        client = http_client or httpx.Client()
        try:
            response = client.post(AUTH_URL, data=post_data, timeout=60.0)
        finally:
            if http_client is None:
                client.close()

        body = response.json() if response.content else {}
        if response.status_code >= 400 or not body.get("refresh_token"):
            raise PressableAuthError(response.status_code, body.get("error_description") or "Token request failed", AUTH_URL)
        return body

    # Requests

    def _make_request(self, method: str, endpoint: str, params=None, json_data=None, data=None, headers=None) -> Any:
        auth_headers = {"Authorization": f"Bearer {self.get_access_token()}", **(headers or {})}
        return super()._make_request(method, endpoint, params=params, json_data=json_data, data=data, headers=auth_headers)

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or "{no response body 😭}"

        if not isinstance(body, dict):
            return str(body)

        message = body.get("message") or body.get("error") or ""
        errors = body.get("errors")
        if errors:
            if isinstance(errors, dict):
                errors = [f"{key}: {value}" for key, value in errors.items()]
            message = f"{message} {', '.join(str(error) for error in errors)}".strip()
        return message or "Unknown error"

    def _raise_for_response(self, response: httpx.Response, endpoint: str):
        if response.status_code == 401:
            self._access_token = None
            raise PressableAuthError(
                401,
                "Pressable authentication failed! Your credentials are probably out of date. "
                "Please update them before running this again or your Pressable account may be locked.",
                endpoint,
            )
        super()._raise_for_response(response, endpoint)

    def _data(self, method: str, endpoint: str, **kwargs) -> Any:
        return self._make_request(method, endpoint, **kwargs).get("data")

    def _lookup(self, endpoint: str) -> Optional[Any]:
        """GET that turns a 404 into None."""
        try:
            return self._data("GET", endpoint)
        except PressableAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def call_api(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        """Raw passthrough returning the full response envelope."""
        if method.upper() == "GET":
            return self._make_request("GET", endpoint, params=payload)
        return self._make_request(method.upper(), endpoint, json_data=payload)

    # Sites

    def list_sites(self, params: Optional[dict] = None) -> List[PressableSite]:
        if not params and self._sites_cache is not None:
            return self._sites_cache

        sites = [PressableSite(**site) for site in self._data("GET", "sites", params=params) or []]
        if not params:
            self._sites_cache = sites
        return sites

    def search_sites(self, term: str) -> List[PressableSite]:
        term = term.lower()
        return [site for site in self.list_sites() if term in site.name.lower() or term in site.url.lower()]

    def get_site(self, site_id: int) -> Optional[PressableSite]:
        site_data = self._lookup(f"sites/{site_id}")
        return PressableSite(**site_data) if site_data else None

    def get_site_by_url(self, url: str, exact: bool = True) -> Optional[PressableSite]:
        """
        Find a site by its URL.

        Args:
            url: Host name such as "example.com"
            exact: When False, a site whose URL ends with ``url`` also matches
        """
        sites = self.list_sites()
        for site in sites:
            if is_case_insensitive_match(site.url, url):
                return site

        if not exact:
            for site in sites:
                if site.url.lower().endswith(url.lower()):
                    return site

        return None

    def create_site(self, name: str, datacenter_code: str) -> PressableSite:
        site_data = self._data("POST", "sites", json_data={"name": name, "datacenter_code": datacenter_code})
        self._sites_cache = None
        return PressableSite(**site_data)

    def clone_site(self, site_id: int, name: str) -> PressableSite:
        site_data = self._data("POST", f"sites/{site_id}/clone", json_data={"name": name})
        self._sites_cache = None
        return PressableSite(**site_data)

    def convert_site(self, site_id: int) -> PressableSite:
        """Convert a staging site into a live site."""
        return PressableSite(**self._data("PUT", f"sites/{site_id}/convert"))

    def wait_for_site(self, site_id: int, interval: float = 1.0, timeout: Optional[float] = None) -> PressableSite:
        """
        Poll until the site is no longer deploying.

        Raises:
            TimeoutError: If a timeout is given and the site is still deploying
        """
        start_time = time.time()
        while True:
            site = self.get_site(site_id)
            if site is not None and site.state != "deploying":
                return site

            if timeout is not None and time.time() - start_time > timeout:
                raise TimeoutError(f"Site {site_id} still deploying after {timeout}s")
            self.sleep(interval)

    # SFTP users

    def list_sftp_users(self, site_id: int) -> List[PressableSFTPUser]:
        return [PressableSFTPUser(**user) for user in self._lookup(f"sites/{site_id}/ftp") or []]

    def get_sftp_user_by_username(self, site_id: int, username: str) -> Optional[PressableSFTPUser]:
        user_data = self._lookup(f"sites/{site_id}/ftp/{username}")
        return PressableSFTPUser(**user_data) if user_data else None

    def get_sftp_user_by_id(self, site_id: int, user_id: int) -> Optional[PressableSFTPUser]:
        return next((user for user in self.list_sftp_users(site_id) if user.id == int(user_id)), None)

    def get_sftp_user_by_email(self, site_id: int, email: str) -> Optional[PressableSFTPUser]:
        return next(
            (user for user in self.list_sftp_users(site_id) if user.email and is_case_insensitive_match(user.email, email)),
            None,
        )

    def get_sftp_owner(self, site_id: int) -> Optional[PressableSFTPUser]:
        return next((user for user in self.list_sftp_users(site_id) if user.owner), None)

    def reset_sftp_password(self, site_id: int, username: str) -> str:
        return self._data("POST", f"sites/{site_id}/ftp/password/{username}")

    # Collaborators

    def list_account_collaborators(self) -> List[PressableCollaborator]:
        return [PressableCollaborator(**c) for c in self._data("GET", "collaborators") or []]

    def list_site_collaborators(self, site_id: int) -> List[PressableCollaborator]:
        return [PressableCollaborator(**c) for c in self._lookup(f"sites/{site_id}/collaborators") or []]

    def get_collaborator_by_id(self, site_id: int, collaborator_id: int) -> Optional[PressableCollaborator]:
        data = self._lookup(f"sites/{site_id}/collaborators/{collaborator_id}")
        return PressableCollaborator(**data) if data else None

    def get_collaborator_by_email(self, site_id: int, email: str) -> Optional[PressableCollaborator]:
        return next(
            (c for c in self.list_site_collaborators(site_id) if is_case_insensitive_match(c.email, email)),
            None,
        )

    def batch_create_collaborators(self, email: str, site_ids: List[int], roles: List[str]) -> bool:
        self._make_request(
            "POST",
            "collaborators/batch_create",
            json_data={"email": email, "siteIds": site_ids, "roles": roles},
        )
        return True

    def create_collaborator(self, email: str, site_id: int, roles: List[str]) -> Optional[PressableCollaborator]:
        """
        Add a collaborator to a single site and wait for it to show up.

        The batch endpoint is asynchronous, so the site's collaborators are
        polled with an exponential delay (1, 2, 4, ... seconds).
        """
        self.batch_create_collaborators(email, [site_id], roles)

        delay = 1
        for _ in range(COLLABORATOR_LOOKUP_RETRIES):
            collaborator = self.get_collaborator_by_email(site_id, email)
            if collaborator is not None:
                return collaborator
            self.sleep(delay)
            delay *= 2

        logger.warning(f"⚠️  Collaborator {email} not visible on site {site_id} yet")
        return None

    def delete_collaborator(self, site_id: int, collaborator_id: int) -> bool:
        self._make_request("DELETE", f"sites/{site_id}/collaborators/{collaborator_id}")
        return True

    def reset_collaborator_wp_password(self, site_id: int, collaborator_id: int) -> str:
        return self._data("PUT", f"sites/{site_id}/collaborators/{collaborator_id}/wp-password-reset")

    def reset_owner_wp_password(self, site_id: int) -> str:
        """Reset the site owner's WP password; the WP user is created if missing."""
        return self._data("PUT", f"sites/{site_id}/wordpress/password-reset")

    # Domains

    def list_domains(self, site_id: int) -> List[PressableDomain]:
        return [PressableDomain(**d) for d in self._data("GET", f"sites/{site_id}/domains") or []]

    def add_domain(self, site_id: int, domain: str) -> List[PressableDomain]:
        return [PressableDomain(**d) for d in self._data("POST", f"sites/{site_id}/domains", json_data={"name": domain}) or []]

    def set_primary_domain(self, site_id: int, domain_id: int) -> PressableDomain:
        return PressableDomain(**self._data("PUT", f"sites/{site_id}/domains/{domain_id}/primary"))

    # Logs

    def list_php_logs(self, site_id: int, severity: Optional[str] = None, limit: int = 2000) -> List[PressablePHPLogEntry]:
        """Latest PHP log entries Pressable collected for a site, optionally of one severity."""
        params: Dict[str, Any] = {"per_page": limit}
        if severity:
            params["severity"] = severity
        return [PressablePHPLogEntry(**entry) for entry in self._data("GET", f"sites/{site_id}/logs/php", params=params) or []]
