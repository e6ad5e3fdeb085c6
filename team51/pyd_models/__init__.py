"""
Data Schemas

This package contains Pydantic models for data validation:
- github_models: Models for GitHub API data
- pressable_models: Models for Pressable API data
- wpcom_models: Models for WordPress.com and Jetpack API data
- deployhq_models: Models for DeployHQ API data
- misc_models: Front, Flickr, 1Password and PHP error log models
"""

from team51.pyd_models.deployhq_models import DeployHQProject, DeployHQServer
from team51.pyd_models.github_models import GitHubRepository, TeamAccessLevel
from team51.pyd_models.pressable_models import (
    PressableCollaborator,
    PressableDomain,
    PressableSFTPUser,
    PressableSite,
)
from team51.pyd_models.wpcom_models import JetpackModule, WPCOMSite, WPCOMUser

__all__ = [
    "DeployHQProject",
    "DeployHQServer",
    "GitHubRepository",
    "TeamAccessLevel",
    "PressableCollaborator",
    "PressableDomain",
    "PressableSFTPUser",
    "PressableSite",
    "JetpackModule",
    "WPCOMSite",
    "WPCOMUser",
]
