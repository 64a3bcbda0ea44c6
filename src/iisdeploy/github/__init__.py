"""GitHub REST API access."""

from iisdeploy.github.client import GitHubClient

__all__ = ["GitHubClient"]
