"""Exchange the operator's long-lived credential for a registration token."""

from __future__ import annotations

import logging
from datetime import datetime

from iisdeploy.github.client import GitHubClient
from iisdeploy.lib.errors import (
    AuthError,
    GitHubAPIError,
    InsufficientScopeError,
    InvalidCredentialError,
    ResourceNotFoundError,
)
from iisdeploy.models.config import RepoRef
from iisdeploy.models.provision import Principal, RegistrationToken, TokenScope

logger = logging.getLogger(__name__)


def translate_api_error(exc: GitHubAPIError, resource: str, operation: str) -> Exception:
    """Map an HTTP failure to the credential error taxonomy.

    401 means the credential itself is bad, 403 that it lacks rights on the
    resource, 404 that the resource is misspelled or invisible. Any other
    status is returned unchanged.
    """
    if exc.status_code == 401:
        return InvalidCredentialError(operation=operation)
    if exc.status_code == 403:
        return InsufficientScopeError(resource, detail=exc.detail, operation=operation)
    if exc.status_code == 404:
        return ResourceNotFoundError(resource, operation=operation)
    return exc


class CredentialBroker:
    """Trade a personal access token for a short-lived registration token.

    The identity is always verified before a token is requested, so a bad
    credential is reported as such rather than as a missing repository.
    Nothing is persisted; the token only lives in the caller's context.
    """

    def __init__(self, client: GitHubClient) -> None:
        self._client = client
        self._principal: Principal | None = None

    @property
    def principal(self) -> Principal | None:
        """Return the verified principal, if verification has run."""
        return self._principal

    def verify_identity(self) -> Principal:
        """Verify the credential against ``GET /user``.

        Raises:
            InvalidCredentialError: If GitHub rejects the token
            AuthError: For any other authorization failure
        """
        try:
            data = self._client.get_user()
        except GitHubAPIError as exc:
            if exc.status_code in (401, 403):
                raise InvalidCredentialError(
                    exc.detail, operation="verify_identity"
                ) from exc
            raise
        principal = Principal.model_validate(data)
        logger.info(f"Authenticated to GitHub as '{principal.login}'")
        self._principal = principal
        return principal

    def fetch_operation_token(
        self, repo: RepoRef, scope: TokenScope = TokenScope.REGISTRATION
    ) -> RegistrationToken:
        """Request a single-purpose runner token for the repository.

        Args:
            repo: Target repository
            scope: Whether the token attaches or detaches a runner

        Raises:
            InvalidCredentialError: Credential rejected
            InsufficientScopeError: Credential lacks admin rights on the repo
            ResourceNotFoundError: Repository misspelled or invisible
        """
        if self._principal is None:
            self.verify_identity()

        try:
            data = self._client.create_registration_token(repo, kind=scope.value)
        except GitHubAPIError as exc:
            raise translate_api_error(
                exc, resource=f"repository {repo.slug}", operation="fetch_operation_token"
            ) from exc

        value = data.get("token")
        if not value:
            raise AuthError(
                message=f"GitHub returned no {scope.value} token",
                remediation="Re-run provisioning; if it persists check GitHub status.",
                operation="fetch_operation_token",
            )
        expires_at = _parse_timestamp(data.get("expires_at"))
        logger.info(
            f"Obtained {scope.value} token for {repo.slug} (expires {expires_at})"
        )
        return RegistrationToken(value=value, expires_at=expires_at)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unrecognized token expiry '{value}'")
        return None
