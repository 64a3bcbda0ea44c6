"""GitHub REST API client.

This module provides the GitHubClient used to verify the operator's
credential, mint runner registration tokens and list registered runners.
"""

import contextlib
import logging
from typing import Any

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from iisdeploy.config.defaults import DEFAULT_GITHUB_API_URL, DEFAULT_TIMEOUTS
from iisdeploy.lib.errors import GitHubAPIError, GitHubConnectionError
from iisdeploy.models.config import RepoRef

logger = logging.getLogger(__name__)


class GitHubClient:
    """Client for the subset of the GitHub REST API used by the installer.

    Network calls are blocking and never retried; failures surface to the
    operator immediately.

    Example:
        >>> client = GitHubClient(token)
        >>> client.get_user()["login"]
        'octocat'
    """

    API_VERSION = "2022-11-28"
    PAGE_SIZE = 100

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_GITHUB_API_URL,
        timeout: float = DEFAULT_TIMEOUTS["http"],
    ) -> None:
        """Initialize client with credential, base URL and timeout.

        Args:
            token: Personal access token (repo admin scope)
            base_url: REST API base URL
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": self.API_VERSION,
                "User-Agent": "iisdeploy",
            }
        )

    def __repr__(self) -> str:
        return f"GitHubClient(base_url={self.base_url!r})"

    def get_user(self) -> dict[str, Any]:
        """Return the authenticated user (``GET /user``)."""
        response = self._request("GET", f"{self.base_url}/user")
        data: dict[str, Any] = response.json()
        return data

    def create_registration_token(
        self, repo: RepoRef, kind: str = "registration"
    ) -> dict[str, Any]:
        """Mint a runner registration (or removal) token for the repository.

        Args:
            repo: Target repository
            kind: "registration" to attach a runner, "remove" to detach one

        Returns:
            Dictionary with ``token`` and ``expires_at`` keys
        """
        url = (
            f"{self.base_url}/repos/{repo.owner}/{repo.repo}"
            f"/actions/runners/{kind}-token"
        )
        response = self._request("POST", url)
        data: dict[str, Any] = response.json()
        return data

    def list_runners(self, repo: RepoRef) -> list[dict[str, Any]]:
        """Return every self-hosted runner registered on the repository."""
        url = f"{self.base_url}/repos/{repo.owner}/{repo.repo}/actions/runners"
        runners: list[dict[str, Any]] = []
        page = 1
        while True:
            response = self._request(
                "GET", url, params={"per_page": self.PAGE_SIZE, "page": page}
            )
            data = response.json()
            batch = data.get("runners", [])
            runners.extend(batch)
            total = data.get("total_count", len(runners))
            if len(batch) < self.PAGE_SIZE or len(runners) >= total:
                break
            page += 1
        return runners

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, str | int] | None = None,
    ) -> requests.Response:
        """Execute HTTP request with error handling.

        Raises:
            GitHubConnectionError: Connection/timeout issues
            GitHubAPIError: Non-2xx status code
        """
        logger.debug(f"{method} {url}")
        try:
            response = self._session.request(
                method=method,
                url=url,
                params=params,
                timeout=self.timeout,
            )
        except Timeout as e:
            raise GitHubConnectionError(self.base_url, original_error=e) from e
        except RequestsConnectionError as e:
            raise GitHubConnectionError(self.base_url, original_error=e) from e

        if not response.ok:
            detail = None
            with contextlib.suppress(Exception):
                detail = response.json().get("message")
            raise GitHubAPIError(url, response.status_code, detail)

        return response
