"""Custom exception hierarchy for iisdeploy provisioning and deploy pipelines."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class IISDeployError(Exception):
    """Base exception for all iisdeploy errors.

    All iisdeploy-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(IISDeployError):
    """Exception raised for configuration errors.

    This exception is raised when configuration loading or parsing fails.
    It includes field-specific information to help operators identify and fix
    configuration issues.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class OperatorCancelled(IISDeployError):
    """Raised when the operator declines a confirmation prompt.

    This is a deliberate no-op rather than a failure: the CLI exits with
    status 0 and nothing on the machine has been changed by the declined step.
    """

    def __init__(self, step: str, message: str) -> None:
        """Record the step at which the operator stopped the pipeline."""
        self.step = step
        self.message = message
        super().__init__(message)


class DeploymentError(IISDeployError):
    """Exception raised when a pipeline step fails.

    Every fatal pipeline error names the step that failed and, where one
    exists, a concrete remediation action for the operator.

    Attributes:
        operation: Name of the failing step (e.g. "download", "stop_pool")
        message: Human-readable description of the failure
        remediation: Suggested operator action, or None
    """

    def __init__(
        self,
        operation: str,
        message: str,
        remediation: str | None = None,
    ) -> None:
        """Initialize DeploymentError with step context.

        Args:
            operation: Step that failed
            message: Descriptive error message
            remediation: Optional operator action that resolves the failure
        """
        self.operation = operation
        self.message = message
        self.remediation = remediation
        text = f"{operation} failed: {message}"
        if remediation:
            text += f"\nRemediation: {remediation}"
        super().__init__(text)


class AuthError(DeploymentError):
    """Base class for GitHub credential and authorization failures."""

    def __init__(
        self,
        message: str,
        remediation: str,
        status_code: int | None = None,
        operation: str = "authenticate",
    ) -> None:
        """Create an authorization error with the HTTP status that caused it."""
        self.status_code = status_code
        super().__init__(operation=operation, message=message, remediation=remediation)


class InvalidCredentialError(AuthError):
    """The personal access token is missing, malformed, revoked or expired."""

    def __init__(self, detail: str | None = None, operation: str = "verify_identity"):
        message = "GitHub rejected the supplied credential (HTTP 401)"
        if detail:
            message += f": {detail}"
        super().__init__(
            message=message,
            remediation=(
                "Create a new personal access token and export it "
                "(e.g. GITHUB_TOKEN) before re-running."
            ),
            status_code=401,
            operation=operation,
        )


class InsufficientScopeError(AuthError):
    """The credential is valid but lacks admin rights on the repository."""

    def __init__(
        self,
        resource: str,
        detail: str | None = None,
        operation: str = "fetch_operation_token",
    ) -> None:
        message = f"Credential lacks permission for {resource} (HTTP 403)"
        if detail:
            message += f": {detail}"
        super().__init__(
            message=message,
            remediation=(
                "Use a token with the 'repo' scope (classic) or "
                "'Administration: read & write' (fine-grained) from a "
                "repository admin."
            ),
            status_code=403,
            operation=operation,
        )


class ResourceNotFoundError(AuthError):
    """The target repository does not exist or is not visible to the token."""

    def __init__(
        self, resource: str, operation: str = "fetch_operation_token"
    ) -> None:
        self.resource = resource
        super().__init__(
            message=f"GitHub resource not found: {resource} (HTTP 404)",
            remediation=(
                "Check the repository URL for typos and that the token's owner "
                "can see the repository."
            ),
            status_code=404,
            operation=operation,
        )


class GitHubConnectionError(DeploymentError):
    """Network failure talking to the GitHub API. Never retried automatically."""

    def __init__(self, base_url: str, original_error: Exception | None = None):
        self.base_url = base_url
        message = f"Failed to reach GitHub API at {base_url}"
        if original_error:
            message += f": {original_error}"
        super().__init__(
            operation="github_api",
            message=message,
            remediation="Check network connectivity and proxy settings, then re-run.",
        )


class GitHubAPIError(DeploymentError):
    """GitHub answered with an unexpected non-2xx status."""

    def __init__(self, url: str, status_code: int, detail: str | None = None):
        self.url = url
        self.status_code = status_code
        self.detail = detail
        message = f"GitHub API returned HTTP {status_code} for {url}"
        if detail:
            message += f": {detail}"
        super().__init__(operation="github_api", message=message)


class DownloadError(DeploymentError):
    """Artifact download failed; the partial file has been removed."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(
            operation="download",
            message=f"Could not download {url}: {message}",
            remediation="Re-run provisioning to download the artifact from scratch.",
        )


class HashMismatchError(DeploymentError):
    """Downloaded artifact does not match the expected SHA-256 digest."""

    def __init__(self, path: Path, expected: str, actual: str) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            operation="verify_checksum",
            message=(
                f"SHA-256 mismatch for {path.name} "
                f"(expected {expected}, got {actual}); corrupted file deleted"
            ),
            remediation=(
                "Re-run to download again, and confirm --runner-hash matches the "
                "published checksum for the runner version."
            ),
        )


class ExtractionError(DeploymentError):
    """Runner archive could not be unpacked."""

    def __init__(self, archive: Path, message: str) -> None:
        self.archive = archive
        super().__init__(
            operation="extract",
            message=f"Could not extract {archive.name}: {message}",
            remediation="Delete the archive and re-run provisioning.",
        )


class ProvisioningError(DeploymentError):
    """A directory, ACL or group membership change could not be applied."""

    pass


class ConfigurationError(DeploymentError):
    """The runner's configuration tool exited with a non-zero status.

    Attributes:
        exit_code: Exit status of the configuration tool
        output: Combined tool output, for diagnostics
    """

    def __init__(
        self,
        message: str,
        exit_code: int,
        output: str = "",
        operation: str = "configure_runner",
    ) -> None:
        self.exit_code = exit_code
        self.output = output
        super().__init__(
            operation=operation,
            message=f"{message} (exit code {exit_code})",
            remediation=(
                "Read the tool output above. If a runner with the same name is "
                "registered elsewhere, remove it in the repository settings or "
                "choose a different --runner-name."
            ),
        )


class ServiceNotFoundError(DeploymentError):
    """The exact runner service was not found; siblings were listed only.

    Attributes:
        service_name: The exact service name that was expected
        siblings: Names of other runner services present on the machine
    """

    def __init__(self, service_name: str, siblings: Sequence[str] = ()) -> None:
        self.service_name = service_name
        self.siblings = list(siblings)
        message = f"Service '{service_name}' is not installed"
        if self.siblings:
            message += f"; other runner services found: {', '.join(self.siblings)}"
        super().__init__(
            operation="locate_service",
            message=message,
            remediation=(
                "Check that configuration completed with --runasservice and that "
                "owner, repository and runner name match. No other service was "
                "started."
            ),
        )


class ServiceStartError(DeploymentError):
    """The runner service did not reach the running state."""

    def __init__(self, service_name: str, status: str) -> None:
        self.service_name = service_name
        self.status = status
        super().__init__(
            operation="ensure_running",
            message=f"Service '{service_name}' is '{status}' after start",
            remediation=(
                "Inspect the runner's _diag logs and the Windows event log, then "
                f"start it manually: Start-Service '{service_name}'"
            ),
        )


class BuildError(DeploymentError):
    """The application build (dotnet publish) failed."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(
            operation="build",
            message=message,
            remediation="Fix the build errors above; the live site was not touched.",
        )


class PoolOperationError(DeploymentError):
    """An app pool command failed outright."""

    pass


class PoolStopTimeoutError(DeploymentError):
    """The app pool did not stop within the bounded wait."""

    def __init__(self, app_pool: str, timeout: float, state: str) -> None:
        self.app_pool = app_pool
        self.timeout = timeout
        self.state = state
        super().__init__(
            operation="stop_pool",
            message=(
                f"App pool '{app_pool}' still '{state}' after {timeout:g}s; "
                "no files were copied"
            ),
            remediation=(
                "Investigate the hung worker process (w3wp.exe), stop the pool "
                "manually and re-run the deploy."
            ),
        )


class CopyError(DeploymentError):
    """The copy engine reported a failure (exit code 8 or higher)."""

    def __init__(self, exit_code: int, source: Path, destination: Path) -> None:
        self.exit_code = exit_code
        self.source = source
        self.destination = destination
        super().__init__(
            operation="copy_files",
            message=(
                f"Copy from {source} to {destination} failed with exit code "
                f"{exit_code}; the app pool is left stopped"
            ),
            remediation=(
                "Check for locked files and permissions on the deploy path, then "
                "re-run or restore from the latest backup archive."
            ),
        )


class VerificationFailedError(DeploymentError):
    """Post-deploy verification failed. New files are left in place.

    Attributes:
        failures: Descriptions of the checks that failed
        backup_path: Archive the operator may restore from, if one was made
    """

    def __init__(self, failures: Sequence[str], backup_path: Path | None = None):
        self.failures = list(failures)
        self.backup_path = backup_path
        if backup_path is not None:
            remediation = f"Restore manually from {backup_path} if needed."
        else:
            remediation = "No backup exists for this deploy (first deploy)."
        super().__init__(
            operation="verify",
            message="; ".join(self.failures),
            remediation=remediation,
        )
