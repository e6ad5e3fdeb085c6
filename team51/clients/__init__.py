"""
API Clients

This package contains client classes for external APIs:
- GitHubClient: Repositories, labels, secrets and teams
- PressableClient: Sites, SFTP users, collaborators and domains
- WPCOMClient: WordPress.com and Jetpack-connected sites
- DeployHQClient: Deployment projects and servers
- FrontClient: Analytics exports
- FlickrClient: Photostream archiving
- OnePasswordCLI: Wrapper around the 1Password ``op`` executable
"""

from team51.clients.base import APIError
from team51.clients.deployhq_client import DeployHQClient
from team51.clients.flickr_client import FlickrClient
from team51.clients.front_client import FrontClient
from team51.clients.github_client import GitHubClient
from team51.clients.onepassword import OnePasswordCLI
from team51.clients.pressable_client import PressableClient
from team51.clients.wpcom_client import WPCOMClient

__all__ = [
    "APIError",
    "DeployHQClient",
    "FlickrClient",
    "FrontClient",
    "GitHubClient",
    "OnePasswordCLI",
    "PressableClient",
    "WPCOMClient",
]
