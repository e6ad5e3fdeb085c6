"""
Pydantic models for DeployHQ API responses.

Reference: https://www.deployhq.com/support/api
"""

from typing import Optional

from pydantic import BaseModel


class DeployHQRepository(BaseModel):
    scm_type: Optional[str] = None
    url: Optional[str] = None
    branch: Optional[str] = None

    class Config:
        extra = "ignore"


class DeployHQProject(BaseModel):
    """
    Represents a DeployHQ project.

    Attributes:
        name: Project name
        permalink: URL-safe identifier used in API paths
        repository: The attached git repository, if any
        public_key: Public half of the project's SSH key pair
        auto_deploy_url: Webhook URL that triggers a deployment
    """
    identifier: Optional[str] = None
    name: str
    permalink: str
    repository: Optional[DeployHQRepository] = None
    public_key: Optional[str] = None
    auto_deploy_url: Optional[str] = None

    class Config:
        extra = "ignore"


class DeployHQServer(BaseModel):
    """A deployment target attached to a DeployHQ project."""
    id: Optional[int] = None
    identifier: str
    name: str
    protocol_type: Optional[str] = None
    hostname: Optional[str] = None
    username: Optional[str] = None
    branch: Optional[str] = None
    preferred_branch: Optional[str] = None
    host_key: Optional[str] = None

    class Config:
        extra = "ignore"
