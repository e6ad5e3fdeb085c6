"""
DeployHQ API Client

Projects, repositories and servers on the team's DeployHQ account.
Authentication is HTTP Basic with the account username and API key.

Reference: https://www.deployhq.com/support/api
"""

import logging
import time
from typing import Callable, List, Optional

import httpx

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.deployhq_models import DeployHQProject, DeployHQServer

logger = logging.getLogger(__name__)


class DeployHQAPIError(APIError):
    """Custom exception for DeployHQ API errors."""
    provider = "DeployHQ"


class DeployHQClient(BaseAPIClient):
    """
    Client for the DeployHQ API.

    Usage:
        client = DeployHQClient()
        project = client.get_project("my-site")
        servers = client.list_servers(project.permalink)
    """

    provider = "DeployHQ"
    error_class = DeployHQAPIError

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        validate_settings(self.settings, ["deployhq_account", "deployhq_username", "deployhq_api_key"])
        self.sleep = sleep

        super().__init__(
            base_url=f"https://{self.settings.deployhq_account}.deployhq.com",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            http_client=http_client,
            timeout=self.settings.http_timeout,
            auth=httpx.BasicAuth(self.settings.deployhq_username, self.settings.deployhq_api_key),
        )

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or "Unknown error"
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    # Projects

    def list_projects(self) -> List[DeployHQProject]:
        return [DeployHQProject(**project) for project in self._make_request("GET", "projects") or []]

    def get_project(self, permalink: str) -> Optional[DeployHQProject]:
        try:
            return DeployHQProject(**self._make_request("GET", f"projects/{permalink}"))
        except DeployHQAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def create_project(self, name: str, zone_id: int, template_id: Optional[str] = None) -> DeployHQProject:
        project = {"name": name, "zone_id": zone_id}
        if template_id:
            project["template_id"] = template_id
        return DeployHQProject(**self._make_request("POST", "projects", json_data={"project": project}))

    def update_project(self, permalink: str, params: dict) -> DeployHQProject:
        return DeployHQProject(
            **self._make_request("PUT", f"projects/{permalink}", json_data={"project": params})
        )

    def create_repository(self, permalink: str, url: str, branch: str = "trunk") -> dict:
        return self._make_request(
            "POST",
            f"projects/{permalink}/repository",
            json_data={"repository": {"scm_type": "git", "url": url, "branch": branch}},
        )

    # Servers

    def list_servers(self, permalink: str) -> List[DeployHQServer]:
        return [DeployHQServer(**server) for server in self._make_request("GET", f"projects/{permalink}/servers") or []]

    def create_server(self, permalink: str, params: dict) -> DeployHQServer:
        return DeployHQServer(
            **self._make_request("POST", f"projects/{permalink}/servers", json_data={"server": params})
        )

    def update_server(self, permalink: str, server_id: str, params: dict) -> DeployHQServer:
        """
        Update a server. DeployHQ only applies a password change when
        ``protocol_type`` is sent alongside it.
        """
        return DeployHQServer(
            **self._make_request(
                "PUT",
                f"projects/{permalink}/servers/{server_id}",
                json_data={"server": params},
            )
        )

    def wait_for_host_key(self, permalink: str, server_id: str, interval: float = 2.0, attempts: int = 30) -> DeployHQServer:
        """
        Poll a freshly created server until DeployHQ has recorded the host key.

        Raises:
            TimeoutError: If the host key never shows up
        """
        for _ in range(attempts):
            server = next((s for s in self.list_servers(permalink) if s.identifier == server_id), None)
            if server is not None and server.host_key:
                return server
            self.sleep(interval)

        raise TimeoutError(f"DeployHQ server {server_id} has no host key after {attempts} attempts")
