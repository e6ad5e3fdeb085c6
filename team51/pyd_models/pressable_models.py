"""
Pydantic models for Pressable API responses.

Pressable uses camelCase keys; fields are exposed in snake_case with
the original names as aliases.

Reference: https://my.pressable.com/documentation/api/v1
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PressableSite(BaseModel):
    """
    Represents a Pressable site.

    Attributes:
        id: Site ID
        name: Internal site name (e.g., "my-site-production")
        display_name: Human-friendly name, usually the primary domain
        url: Primary URL without scheme (e.g., "my-site.mystagingwebsite.com")
        cloned_from_id: ID of the site this one was cloned from, if any
        staging: Whether the site is a staging (non-live) site
        state: Provisioning state ("deploying", "live", ...)
    """
    id: int
    name: str
    display_name: Optional[str] = Field(None, alias="displayName")
    url: str = ""
    cloned_from_id: Optional[int] = Field(None, alias="clonedFromId")
    staging: bool = False
    state: Optional[str] = None
    datacenter_code: Optional[str] = Field(None, alias="datacenterCode")

    class Config:
        extra = "ignore"
        populate_by_name = True

    @property
    def label(self) -> str:
        """Short description used in status lines."""
        return f"{self.display_name or self.name} (ID {self.id}, URL {self.url})"

    @property
    def staging_url(self) -> str:
        return f"https://{self.name}.mystagingwebsite.com"


class PressableSFTPUser(BaseModel):
    """An SFTP/SSH user on a Pressable site. The owner account deploys."""
    id: int
    username: str
    email: Optional[str] = None
    owner: bool = False
    sftp_domain: Optional[str] = Field(None, alias="sftpDomain")

    class Config:
        extra = "ignore"
        populate_by_name = True


class PressableCollaborator(BaseModel):
    """A collaborator attached to a Pressable site."""
    id: int
    email: str
    wp_username: Optional[str] = Field(None, alias="wpUsername")
    site_id: Optional[int] = Field(None, alias="siteId")
    site_name: Optional[str] = Field(None, alias="siteName")
    roles: List[str] = []

    class Config:
        extra = "ignore"
        populate_by_name = True


class PressableDomain(BaseModel):
    id: int
    domain_name: str = Field(..., alias="domainName")
    primary: bool = False

    class Config:
        extra = "ignore"
        populate_by_name = True


class PressableTokens(BaseModel):
    """OAuth token pair as stored in the local token cache."""
    access_token: str
    refresh_token: Optional[str] = None
    created_at: int = 0

    class Config:
        extra = "ignore"


class PressablePHPLogEntry(BaseModel):
    """
    One entry of the PHP error log Pressable keeps for a site.

    ``timestamp`` arrives either as epoch seconds or an ISO string.
    """
    message: str
    severity: str = ""
    kind: Optional[str] = None
    name: Optional[str] = None
    file: Optional[str] = None
    line: Optional[int] = None
    timestamp: datetime
    atomic_site_id: Optional[int] = None

    class Config:
        extra = "ignore"
