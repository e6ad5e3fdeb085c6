"""
Pydantic models for GitHub API responses. These models:
1. Define the structure of data we receive from GitHub
2. Automatically validate and parse JSON responses
3. Provide type hints for better IDE support

Reference: https://docs.github.com/en/rest/repos
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    """
    Represents a GitHub user or organization.

    Attributes:
        login: GitHub username
        id: User ID
        html_url: URL to user's GitHub profile
    """
    login: str
    id: int
    html_url: Optional[str] = None

    class Config:
        # Allow extra fields from API response (ignore them)
        extra = "ignore"


class GitHubRepository(BaseModel):
    """
    Represents a GitHub repository.

    Attributes:
        id: Repository ID
        name: Repository slug (e.g., "my-site")
        full_name: "owner/name"
        private: Whether the repository is private
        html_url: URL to the repository on GitHub
        ssh_url: git@github.com URL used by DeployHQ
        default_branch: Branch checked out by default (usually "trunk")
        archived: Whether the repository is archived
    """
    id: int
    name: str
    full_name: str
    private: bool = True
    description: Optional[str] = None
    html_url: Optional[str] = None
    ssh_url: Optional[str] = None
    clone_url: Optional[str] = None
    homepage: Optional[str] = None
    default_branch: str = "trunk"
    archived: bool = False
    owner: Optional[GitHubUser] = None

    class Config:
        extra = "ignore"


class GitHubLabel(BaseModel):
    """
    Represents a GitHub issue label.

    Attributes:
        name: Label name (e.g., "in progress")
        color: Hex color code without the leading # (e.g., "f9c581")
        description: Optional label description
    """
    id: Optional[int] = None
    name: str
    color: str
    description: Optional[str] = None

    class Config:
        extra = "ignore"


class GitHubPublicKey(BaseModel):
    """Repository public key used to encrypt Actions secrets."""
    key_id: str
    key: str

    class Config:
        extra = "ignore"


class GitHubSecret(BaseModel):
    """An Actions secret (the value is never returned by the API)."""
    name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        extra = "ignore"


class GitHubRefObject(BaseModel):
    sha: str
    type: str = "commit"

    class Config:
        extra = "ignore"


class GitHubRef(BaseModel):
    """A git reference such as refs/heads/trunk."""
    ref: str
    object: GitHubRefObject

    class Config:
        extra = "ignore"

    @property
    def sha(self) -> str:
        return self.object.sha


class GitHubHook(BaseModel):
    id: int
    name: str = "web"
    active: bool = True
    events: List[str] = []

    class Config:
        extra = "ignore"


class TeamAccessLevel(str, Enum):
    """Access levels accepted by the repos-to-teams command."""
    TRIAGE = "triage"
    DEPLOY = "deploy"
    ADMIN = "admin"

    @property
    def permission(self) -> str:
        """GitHub permission name for this access level."""
        return {
            TeamAccessLevel.TRIAGE: "triage",
            TeamAccessLevel.DEPLOY: "push",
            TeamAccessLevel.ADMIN: "admin",
        }[self]


class BranchProtectionRules(BaseModel):
    """
    Body of PUT /repos/{owner}/{repo}/branches/{branch}/protection.

    Only the PHPCS status check is enforced; reviews, admins and push
    restrictions are left unset.
    """
    required_status_checks: dict = Field(
        default_factory=lambda: {"strict": True, "contexts": ["Run PHPCS inspection"]}
    )
    enforce_admins: Optional[bool] = None
    required_pull_request_reviews: Optional[dict] = None
    restrictions: Optional[dict] = None


class GitHubIssue(BaseModel):
    number: int
    title: str
    html_url: Optional[str] = None
    labels: List[GitHubLabel] = []

    class Config:
        extra = "ignore"


class GitHubProjectCard(BaseModel):
    """A card of a classic project board; notes have no ``content_url``."""
    id: int
    content_url: Optional[str] = None
    note: Optional[str] = None

    class Config:
        extra = "ignore"
