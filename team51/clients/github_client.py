"""
GitHub API Client

This client handles all interactions with the GitHub REST API: repository
creation from templates, labels, topics, Actions secrets, branch
protection, team access and webhooks.

Reference: https://docs.github.com/en/rest
"""

import base64
import logging
from typing import Iterator, List, Optional
from urllib.parse import quote

import httpx
from nacl import encoding, public

from team51.clients.base import APIError, BaseAPIClient
from team51.config import Settings, get_settings, validate_settings
from team51.pyd_models.github_models import (
    BranchProtectionRules,
    GitHubHook,
    GitHubIssue,
    GitHubLabel,
    GitHubProjectCard,
    GitHubPublicKey,
    GitHubRef,
    GitHubRepository,
    GitHubSecret,
)

logger = logging.getLogger(__name__)

PROJECT_ITEMS_QUERY = """
query($projectId: ID!, $first: Int!, $after: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: $first, after: $after) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          fieldValues(first: 10) {
            nodes {
              ... on ProjectV2ItemFieldDateValue {
                date
              }
              ... on ProjectV2ItemFieldSingleSelectValue {
                name
              }
            }
          }
          content {
            ... on Issue {
              title
              number
              url
              labels(first: 10) {
                nodes {
                  name
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class GitHubAPIError(APIError):
    """Custom exception for GitHub API errors."""
    provider = "GitHub"


def encrypt_secret(public_key: str, secret_value: str) -> str:
    """Seal a secret against a repository's base64 public key (libsodium sealed box)."""
    key = public.PublicKey(public_key.encode("utf-8"), encoding.Base64Encoder())
    sealed_box = public.SealedBox(key)
    encrypted = sealed_box.encrypt(secret_value.encode("utf-8"))
    return base64.b64encode(encrypted).decode("utf-8")


class GitHubClient(BaseAPIClient):
    """
    Client for interacting with GitHub's REST API.

    Usage:
        client = GitHubClient()
        repo = client.get_repository("a8cteam51", "my-site")
        client.add_branch_protection("a8cteam51", "my-site")
    """

    provider = "GitHub"
    error_class = GitHubAPIError

    def __init__(
        self,
        token: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the GitHub client.

        Args:
            token: GitHub Personal Access Token. If not provided,
                   uses GITHUB_API_TOKEN from the config.
        """
        settings = settings or get_settings()
        if token is None:
            validate_settings(settings, ["github_api_token"])
        self.token = token or settings.github_api_token
        self.owner = settings.github_api_owner

        super().__init__(
            base_url="https://api.github.com",
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            http_client=http_client,
            timeout=settings.http_timeout,
        )

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = super()._send(method, url, **kwargs)

        # Check rate limit (for monitoring)
        rate_limit_remaining = response.headers.get("X-RateLimit-Remaining")
        if rate_limit_remaining and int(rate_limit_remaining) < 100:
            logger.warning(f"⚠️  GitHub API rate limit low: {rate_limit_remaining} requests remaining")

        return response

    # Repositories

    def iter_org_repositories(self, org: str, repo_type: str = "all", per_page: int = 100) -> Iterator[GitHubRepository]:
        """
        Yield every repository of an organization, one page at a time.

        Args:
            org: Organization login
            repo_type: "all", "public", "private", "forks", "sources" or "member"
            per_page: Results per page, max 100
        """
        page = 1
        while True:
            response_data = self._make_request(
                "GET",
                f"/orgs/{org}/repos",
                params={"type": repo_type, "per_page": min(per_page, 100), "page": page},
            )
            if not response_data:
                break

            for repo_data in response_data:
                yield GitHubRepository(**repo_data)
            page += 1

    def list_org_repositories(self, org: str, repo_type: str = "all") -> List[GitHubRepository]:
        return list(self.iter_org_repositories(org, repo_type))

    def get_repository(self, owner: str, repo: str) -> Optional[GitHubRepository]:
        """Get a repository, or None if it does not exist."""
        try:
            response_data = self._make_request("GET", f"/repos/{owner}/{repo}")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise

        return GitHubRepository(**response_data)

    def create_repository_from_template(
        self,
        owner: str,
        name: str,
        template_owner: str,
        template_repo: str,
        description: Optional[str] = None,
    ) -> GitHubRepository:
        """
        Create a new private repository from a template repository.

        Example:
            client.create_repository_from_template(
                "a8cteam51", "my-site", "a8cteam51", "team51-project-scaffold"
            )
        """
        body = {
            "owner": owner,
            "name": name,
            "description": description,
            "private": True,
        }
        body = {key: value for key, value in body.items() if value is not None}

        response_data = self._make_request(
            "POST",
            f"/repos/{template_owner}/{template_repo}/generate",
            json_data=body,
        )
        return GitHubRepository(**response_data)

    def update_repository(self, owner: str, repo: str, body: dict) -> GitHubRepository:
        response_data = self._make_request("PATCH", f"/repos/{owner}/{repo}", json_data=body)
        return GitHubRepository(**response_data)

    # Labels and topics

    def delete_label(self, owner: str, repo: str, name: str) -> bool:
        try:
            self._make_request("DELETE", f"/repos/{owner}/{repo}/labels/{quote(name, safe='')}")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def create_label(
        self,
        owner: str,
        repo: str,
        name: str,
        color: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GitHubLabel:
        body = {"name": name, "color": color, "description": description}
        body = {key: value for key, value in body.items() if value is not None}

        response_data = self._make_request("POST", f"/repos/{owner}/{repo}/labels", json_data=body)
        return GitHubLabel(**response_data)

    def replace_topics(self, owner: str, repo: str, names: List[str]) -> List[str]:
        response_data = self._make_request("PUT", f"/repos/{owner}/{repo}/topics", json_data={"names": names})
        return response_data.get("names", [])

    # Actions secrets

    def list_secrets(self, owner: str, repo: str) -> List[GitHubSecret]:
        response_data = self._make_request("GET", f"/repos/{owner}/{repo}/actions/secrets")
        return [GitHubSecret(**secret) for secret in response_data.get("secrets", [])]

    def get_public_key(self, owner: str, repo: str) -> GitHubPublicKey:
        response_data = self._make_request("GET", f"/repos/{owner}/{repo}/actions/secrets/public-key")
        return GitHubPublicKey(**response_data)

    def update_secret(
        self,
        owner: str,
        repo: str,
        name: str,
        value: str,
        public_key: Optional[GitHubPublicKey] = None,
    ) -> bool:
        """
        Create or update an Actions secret.

        The value is encrypted locally; pass ``public_key`` to avoid
        fetching it again when setting several secrets on one repository.
        """
        public_key = public_key or self.get_public_key(owner, repo)
        self._make_request(
            "PUT",
            f"/repos/{owner}/{repo}/actions/secrets/{name}",
            json_data={
                "encrypted_value": encrypt_secret(public_key.key, value),
                "key_id": public_key.key_id,
            },
        )
        return True

    # Branches and refs

    def add_branch_protection(self, owner: str, repo: str, branch: str = "trunk") -> dict:
        return self._make_request(
            "PUT",
            f"/repos/{owner}/{repo}/branches/{branch}/protection",
            json_data=BranchProtectionRules().model_dump(),
        )

    def delete_branch_protection(self, owner: str, repo: str, branch: str = "trunk") -> bool:
        self._make_request("DELETE", f"/repos/{owner}/{repo}/branches/{branch}/protection")
        return True

    def get_branch_ref(self, owner: str, repo: str, branch: str) -> Optional[GitHubRef]:
        try:
            response_data = self._make_request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise

        return GitHubRef(**response_data)

    def create_branch(self, owner: str, repo: str, branch: str, sha: str) -> GitHubRef:
        response_data = self._make_request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json_data={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        return GitHubRef(**response_data)

    # Teams

    def add_team_membership(self, org: str, team: str, username: str, role: str = "member") -> dict:
        return self._make_request(
            "PUT",
            f"/orgs/{org}/teams/{team}/memberships/{username}",
            json_data={"role": role},
        )

    def add_team_repository(self, org: str, team: str, owner: str, repo: str, permission: str) -> bool:
        self._make_request(
            "PUT",
            f"/orgs/{org}/teams/{team}/repos/{owner}/{repo}",
            json_data={"permission": permission},
        )
        return True

    # Webhooks

    def create_push_webhook(self, owner: str, repo: str, url: str) -> GitHubHook:
        """Create a form-encoded push webhook, used for DeployHQ auto-deploys."""
        response_data = self._make_request(
            "POST",
            f"/repos/{owner}/{repo}/hooks",
            json_data={
                "name": "web",
                "events": ["push"],
                "active": True,
                "config": {
                    "url": url,
                    "content_type": "form",
                    "insecure_ssl": "0",
                },
            },
        )
        return GitHubHook(**response_data)

    # Projects

    def graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """
        Run a GraphQL query and return its ``data``.

        Raises:
            GitHubAPIError: If the response carries GraphQL errors
        """
        response_data = self._make_request("POST", "/graphql", json_data={"query": query, "variables": variables or {}})
        if response_data.get("errors"):
            message = "; ".join(error.get("message", str(error)) for error in response_data["errors"])
            raise GitHubAPIError(200, message, "/graphql")
        return response_data.get("data") or {}

    def iter_project_items(self, project_id: str, per_page: int = 100) -> Iterator[dict]:
        """Yield the items of a ProjectV2 board with their field values and issue content."""
        after = None
        while True:
            data = self.graphql(PROJECT_ITEMS_QUERY, {"projectId": project_id, "first": per_page, "after": after})
            items = (data.get("node") or {}).get("items") or {}
            yield from items.get("nodes") or []

            page_info = items.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            after = page_info.get("endCursor")

    def list_project_column_cards(self, column_id: str) -> List[GitHubProjectCard]:
        """Cards of a classic project board column."""
        response_data = self._make_request("GET", f"/projects/columns/{column_id}/cards", params={"per_page": 100})
        return [GitHubProjectCard(**card) for card in response_data or []]

    def get_issue_by_url(self, url: str) -> GitHubIssue:
        """Fetch an issue from its API URL (a card's ``content_url``)."""
        return GitHubIssue(**self._make_request("GET", url))
