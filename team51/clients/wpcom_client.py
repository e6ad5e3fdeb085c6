"""
WordPress.com / Jetpack API Client

This client talks to the public WordPress.com REST API directly, and to
Jetpack-connected sites through the ``jetpack-blogs/{id}/rest-api`` proxy.

Reference: https://developer.wordpress.com/docs/api/
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.wpcom_models import (
    AtomicTransfer,
    JetpackBlog,
    JetpackModule,
    PublicizeConnection,
    SitePlugin,
    StagingSite,
    StatsSummary,
    WooCommerceOrderStats,
    WPCOMSite,
    WPCOMUser,
)
from team51.utils import is_case_insensitive_match

logger = logging.getLogger(__name__)

BASE_URL = "https://public-api.wordpress.com/"
REST_PREFIX = "rest/v1.1"
WPCOM_V2_URL = f"{BASE_URL}wpcom/v2"
MAX_CONCURRENT_REQUESTS = 10


class WPCOMAPIError(APIError):
    """Custom exception for WordPress.com API errors."""
    provider = "WordPress.com"


class WPCOMClient(BaseAPIClient):
    """
    Client for the WordPress.com REST API and the Jetpack site proxy.

    Usage:
        client = WPCOMClient()
        site = client.get_site("example.com")
        modules = client.list_jetpack_modules(site.id)
    """

    provider = "WordPress.com"
    error_class = WPCOMAPIError
    quiet_status_codes = (403, 404)

    def __init__(
        self,
        token: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        max_workers: int = MAX_CONCURRENT_REQUESTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = settings or get_settings()
        if token is None:
            validate_settings(settings, ["wpcom_api_account_token"])
        self.token = token or settings.wpcom_api_account_token
        self.max_workers = max_workers
        self.sleep = sleep

        super().__init__(
            base_url=BASE_URL,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.token}",
            },
            http_client=http_client,
            timeout=settings.http_timeout,
        )

    @staticmethod
    def get_request_url(endpoint: str) -> str:
        """
        Build the full URL for a REST endpoint.

        Example:
            get_request_url("sites/123")
            # https://public-api.wordpress.com/rest/v1.1/sites/123
        """
        endpoint = endpoint.strip("/")
        if not endpoint.startswith(REST_PREFIX):
            endpoint = f"{REST_PREFIX}/{endpoint}"
        return f"{BASE_URL}{endpoint}"

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return self.get_request_url(endpoint)

    def call_api(self, endpoint: str, method: str = "GET", params: Optional[dict] = None) -> Any:
        if method == "GET":
            return self._make_request(method, endpoint, params=params)
        return self._make_request(method, endpoint, json_data=params)

    def _lookup(self, endpoint: str, params: Optional[dict] = None) -> Optional[Any]:
        try:
            return self._make_request("GET", endpoint, params=params)
        except WPCOMAPIError as e:
            if e.status_code in self.quiet_status_codes:
                return None
            raise

    def call_api_concurrent(
        self,
        endpoints: Union[Mapping[Any, str], List[str]],
        method: str = "GET",
        bodies: Optional[Mapping[Any, dict]] = None,
    ) -> Dict[Any, Optional[Any]]:
        """
        Run independent requests in parallel.

        Args:
            endpoints: A mapping of key -> endpoint (or a list, keyed by index)
            method: HTTP method shared by every request
            bodies: Optional JSON bodies, keyed like ``endpoints``

        Returns:
            key -> decoded body, or None for requests that failed
        """
        if not isinstance(endpoints, Mapping):
            endpoints = dict(enumerate(endpoints))
        bodies = bodies or {}

        def fetch(key):
            try:
                return self._make_request(method, endpoints[key], json_data=bodies.get(key))
            except (APIError, httpx.HTTPError) as e:
                logger.debug(f"❌ WordPress.com API error ({endpoints[key]}): {e}")
                return None

        results: Dict[Any, Optional[Any]] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(fetch, key): key for key in endpoints}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        return {key: results[key] for key in endpoints}

    def call_site_api(self, site: Union[int, str], path: str, body: Any = None, as_json: bool = True) -> Any:
        """
        Call a site's own REST API through the Jetpack proxy.

        Args:
            site: Site ID or URL
            path: Path on the site (e.g., "/wp/v2/users/1")
            body: Optional request body; sent JSON-encoded unless ``as_json`` is False
        """
        site_id = self.ensure_site_id(site)
        if site_id is None:
            raise WPCOMAPIError(404, f"Invalid site ID or URL ({site})")

        params: Dict[str, Any] = {"path": path}
        if body is not None:
            params["json"] = as_json
            params["body"] = json.dumps(body) if as_json else body

        return self._make_request("POST", f"jetpack-blogs/{site_id}/rest-api", json_data=params)

    def ensure_site_id(self, site: Union[int, str]) -> Optional[int]:
        if isinstance(site, int) or str(site).isdigit():
            return int(site)
        wpcom_site = self.get_site(site)
        return wpcom_site.id if wpcom_site else None

    # Sites

    def list_jetpack_sites(self) -> List[JetpackBlog]:
        response_data = self._make_request("GET", "jetpack-blogs/")
        if not response_data.get("success"):
            raise WPCOMAPIError(200, "Jetpack sites listing was not successful", "jetpack-blogs/")
        return [JetpackBlog(**blog) for blog in response_data["blogs"]["blogs"]]

    def list_sites(self, fields: Optional[str] = None) -> List[WPCOMSite]:
        params = {"fields": fields} if fields else None
        response_data = self._make_request("GET", "me/sites", params=params)
        if "error" in response_data:
            raise WPCOMAPIError(200, response_data.get("message", response_data["error"]), "me/sites")
        return [WPCOMSite(**site) for site in response_data.get("sites", [])]

    def get_site(self, site: Union[int, str]) -> Optional[WPCOMSite]:
        site_data = self._lookup(f"sites/{site}")
        return WPCOMSite(**site_data) if site_data else None

    # Users

    def list_site_users(self, site: Union[int, str], params: Optional[dict] = None) -> List[WPCOMUser]:
        response_data = self._lookup(f"sites/{site}/users", params=params)
        if not response_data:
            return []
        return [WPCOMUser(**user) for user in response_data.get("users", [])]

    def get_site_user_by_email(self, site: Union[int, str], email: str) -> Optional[WPCOMUser]:
        for user in self.list_site_users(site):
            if user.email and is_case_insensitive_match(email, user.email):
                return user
        return None

    def set_user_password(self, site: Union[int, str], user_id: int, password: str) -> bool:
        result = self.call_site_api(site, f"/wp/v2/users/{user_id}", {"password": password})
        return bool(result)

    def delete_site_user(self, site_id: int, user_id: int) -> bool:
        result = self._make_request("POST", f"sites/{site_id}/users/{user_id}/delete")
        return bool(result.get("success", True))

    # Blog stickers

    def list_stickers(self, site_id: int) -> List[str]:
        return list(self._make_request("GET", f"sites/{site_id}/blog-stickers") or [])

    def add_sticker(self, site_id: int, sticker: str) -> bool:
        result = self._make_request("POST", f"sites/{site_id}/blog-stickers/add/{sticker}")
        return bool(result.get("success"))

    def remove_sticker(self, site_id: int, sticker: str) -> bool:
        result = self._make_request("POST", f"sites/{site_id}/blog-stickers/remove/{sticker}")
        return bool(result.get("success"))

    # Jetpack

    def list_jetpack_modules(self, site: Union[int, str]) -> List[JetpackModule]:
        result = self.call_site_api(site, "/jetpack/v4/module/all")
        modules = result.get("data", result) if isinstance(result, dict) else {}
        return sorted(
            (JetpackModule(**{"module": slug, **module}) for slug, module in modules.items() if isinstance(module, dict)),
            key=lambda module: module.module,
        )

    def set_jetpack_module(self, site: Union[int, str], module: str, active: bool) -> bool:
        result = self.call_site_api(site, f"/jetpack/v4/module/{module}/active", {"active": active})
        return bool(result)

    def update_jetpack_settings(self, site: Union[int, str], settings: dict) -> bool:
        result = self.call_site_api(site, "/jetpack/v4/settings", settings)
        return bool(result)

    def get_jetpack_namespace(self, site: Union[int, str]) -> dict:
        result = self.call_site_api(site, "/jetpack/v4")
        return result.get("data", result) if isinstance(result, dict) else {}

    # Plugins

    def list_site_plugins(self, site: Union[int, str]) -> Optional[List[SitePlugin]]:
        """
        Plugins installed on a Jetpack-connected site.

        Returns None when the site doesn't answer, so callers can report it
        as "not checked" rather than "no plugins".
        """
        site_id = self.ensure_site_id(site)
        response_data = self._lookup(f"jetpack-blogs/{site_id}/rest-api/", params={"path": "/jetpack/v4/plugins"})
        if not response_data or "error" in response_data or not isinstance(response_data.get("data"), dict):
            return None

        return [
            SitePlugin(
                slug=plugin_file.split("/", 1)[0],
                file=plugin_file,
                name=plugin.get("Name"),
                text_domain=plugin.get("TextDomain"),
                version=plugin.get("Version"),
                active=bool(plugin.get("active")),
            )
            for plugin_file, plugin in response_data["data"].items()
        ]

    def list_account_plugins(self) -> Dict[int, List[SitePlugin]]:
        """Plugins of every Jetpack site on the account, from the Jetpack profile data (blog ID -> plugins)."""
        response_data = self._make_request("GET", "me/sites/plugins")
        return {
            int(blog_id): [SitePlugin(**plugin) for plugin in plugins]
            for blog_id, plugins in (response_data.get("sites") or {}).items()
        }

    # Stats

    def get_site_stats_summary(self, site_id: int, period: str, date: str, num: int = 1) -> Optional[StatsSummary]:
        response_data = self._lookup(
            f"sites/{site_id}/stats/summary", params={"period": period, "date": date, "num": num}
        )
        if not response_data or "error" in response_data:
            return None
        return StatsSummary(**response_data)

    def get_woocommerce_order_stats(self, site_id: int, unit: str, date: str) -> Optional[WooCommerceOrderStats]:
        response_data = self._lookup(
            f"{WPCOM_V2_URL}/sites/{site_id}/stats/orders", params={"unit": unit, "date": date, "quantity": 1}
        )
        if not response_data or "error" in response_data:
            return None
        return WooCommerceOrderStats(**response_data)

    def list_publicize_connections(self, site_id: int, service: str) -> List[PublicizeConnection]:
        response_data = self._lookup(f"sites/{site_id}/publicize-connections/", params={"service": service})
        if not response_data or "error" in response_data:
            return []
        return [PublicizeConnection(**connection) for connection in response_data.get("connections") or []]

    def get_site_profile_dns(self, domain: str) -> Optional[List[dict]]:
        """DNS records of a domain as seen by the WordPress.com site profiler."""
        response_data = self._lookup(f"{WPCOM_V2_URL}/site-profiler/{domain}", params={"_envelope": 1})
        if not response_data:
            return None
        body = response_data.get("body", response_data)
        if not isinstance(body, dict) or not isinstance(body.get("dns"), list):
            return None
        return body["dns"]

    # Hosting (wpcom/v2)

    def call_hosting_api(self, site_id: int, path: str, method: str = "GET", body: Optional[dict] = None) -> Any:
        """Call a ``wpcom/v2/sites/{id}/...`` endpoint."""
        return self.call_api(f"{WPCOM_V2_URL}/sites/{site_id}/{path.lstrip('/')}", method, body)

    def get_transfer_eligibility(self, site_id: int) -> Tuple[bool, List[str]]:
        """Return (is_eligible, errors) for a transfer to Atomic."""
        response_data = self.call_hosting_api(site_id, "automated-transfers/eligibility")
        errors = [
            error.get("message", str(error)) if isinstance(error, dict) else str(error)
            for error in response_data.get("errors") or []
        ]
        return response_data.get("is_eligible") is True, errors

    def initiate_transfer(self, site_id: int) -> int:
        response_data = self.call_api(f"sites/{site_id}/automated-transfers/initiate", "POST", {})
        if "raw" in response_data:
            # The JSON body can be followed by an HTML page.
            try:
                response_data, _ = json.JSONDecoder().raw_decode(response_data["raw"].lstrip())
            except ValueError as e:
                raise WPCOMAPIError(200, f"Unreadable transfer response: {e}", "automated-transfers/initiate") from e
        transfer = AtomicTransfer(**response_data)
        if transfer.transfer_id is None:
            raise WPCOMAPIError(200, "The transfer to Atomic was not initiated", f"sites/{site_id}/automated-transfers/initiate")
        return transfer.transfer_id

    def get_transfer_status(self, site_id: int, transfer_id: Optional[int] = None) -> Optional[AtomicTransfer]:
        path = f"{WPCOM_V2_URL}/sites/{site_id}/automated-transfers/status/{transfer_id or ''}"
        response_data = self._lookup(path)
        return AtomicTransfer(**response_data) if response_data else None

    def wait_for_transfer(
        self,
        site_id: int,
        transfer_id: Optional[int] = None,
        interval: float = 10,
        attempts: int = 360,
        on_poll: Optional[Callable[[Optional[AtomicTransfer]], None]] = None,
    ) -> AtomicTransfer:
        """
        Poll an automated transfer until it completes.

        Checks are at least ``interval`` seconds apart; the endpoint rate
        limits tighter polling.

        Raises:
            TimeoutError: If the transfer hasn't completed after ``attempts`` checks
        """
        for _ in range(attempts):
            self.sleep(interval)
            transfer = self.get_transfer_status(site_id, transfer_id)
            if on_poll is not None:
                on_poll(transfer)
            if transfer is not None and transfer.status == "complete":
                return transfer

        raise TimeoutError(f"The transfer of site {site_id} did not complete after {attempts} checks")

    def wait_for_staging_site_deletion(
        self, staging_site_id: int, interval: float = 10, attempts: int = 360
    ) -> None:
        """Poll until the staging site's transfer status is gone."""
        for _ in range(attempts):
            self.sleep(interval)
            if self.get_transfer_status(staging_site_id) is None:
                return

        raise TimeoutError(f"Staging site {staging_site_id} was not deleted after {attempts} checks")

    def list_staging_sites(self, site_id: int) -> List[StagingSite]:
        return [StagingSite(**site) for site in self.call_hosting_api(site_id, "staging-site") or []]

    def validate_staging_quota(self, site_id: int) -> bool:
        return self.call_hosting_api(site_id, "staging-site/validate-quota", "POST", {}) is True

    def create_staging_site(self, site_id: int) -> StagingSite:
        response_data = self.call_hosting_api(site_id, "staging-site", "POST", {})
        if response_data.get("errors"):
            raise WPCOMAPIError(200, "".join(map(str, response_data["errors"])), "staging-site")
        return StagingSite(**response_data)

    def delete_staging_site(self, site_id: int, staging_site_id: int) -> None:
        response_data = self.call_hosting_api(site_id, f"staging-site/{staging_site_id}", "DELETE")
        if isinstance(response_data, dict) and response_data.get("errors"):
            raise WPCOMAPIError(200, "".join(map(str, response_data["errors"])), "staging-site")

    def list_ssh_users(self, site_id: int) -> List[str]:
        return list(self.call_hosting_api(site_id, "hosting/ssh-users").get("users") or [])

    def create_ssh_user(self, site_id: int) -> str:
        response_data = self.call_hosting_api(site_id, "hosting/ssh-user", "POST", {})
        if not response_data.get("username"):
            raise WPCOMAPIError(200, "The SFTP/SSH user was not created", "hosting/ssh-user")
        return response_data["username"]

    def reset_ssh_password(self, site_id: int) -> str:
        response_data = self.call_hosting_api(site_id, "hosting/ssh-user/reset-password", "POST", {})
        if not response_data.get("password"):
            raise WPCOMAPIError(200, "The SFTP/SSH password was not reset", "hosting/ssh-user/reset-password")
        return response_data["password"]

    def enable_ssh_access(self, site_id: int) -> bool:
        response_data = self.call_hosting_api(site_id, "hosting/ssh-access", "POST", {"setting": "ssh"})
        return response_data.get("setting") == "ssh"

    def attach_ssh_key(self, site_id: int, name: str = "default") -> bool:
        try:
            return bool(self.call_hosting_api(site_id, "hosting/ssh-keys", "POST", {"name": name}))
        except WPCOMAPIError as e:
            logger.debug(f"SSH key {name} not attached to {site_id}: {e}")
            return False
