"""
Team51 operations toolkit

This package holds the logic behind the team51 CLI: configuration, typed
clients for the hosting and tooling APIs the team works with (GitHub,
Pressable, WordPress.com/Jetpack, DeployHQ, Front, Flickr, Slack, 1Password)
and the site provisioning and password rotation workflows built on them.
"""

__version__ = "0.1.0"
