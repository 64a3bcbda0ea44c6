"""Pydantic models for provisioning and deploy configuration.

Every recognized input has explicit required / optional / defaulted
semantics. Values may come from a YAML file, the environment, CLI flags or
interactive prompts; see ``iisdeploy.config.loader``.
"""

import re
from enum import Enum
from pathlib import Path, PureWindowsPath
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from iisdeploy.config.defaults import (
    DEFAULT_ADMIN_GROUP,
    DEFAULT_BACKUP_KEEP,
    DEFAULT_BACKUP_PATH,
    DEFAULT_BUILD_CONFIGURATION,
    DEFAULT_DOTNET_VERSION,
    DEFAULT_GITHUB_API_URL,
    DEFAULT_RUNNER_VERSION,
    DEFAULT_TIMEOUTS,
    DEFAULT_TOKEN_ENV,
    default_runner_name,
    default_runner_root,
)

# Regex patterns for validation
REPO_URL_PATTERN = re.compile(
    r"^(?P<base>https?://[^/]+)/(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+?)"
    r"(?:\.git)?/?$"
)
RUNNER_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
SHA256_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")
BACKUP_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
DOTNET_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.(x|\d+)$")


class RepoRef(BaseModel):
    """Owner/repository pair parsed from a repository URL."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str

    @classmethod
    def from_url(cls, url: str) -> "RepoRef":
        """Parse ``https://github.com/<owner>/<repo>[.git]``.

        Raises:
            ValueError: If the URL does not name an owner and a repository
        """
        match = REPO_URL_PATTERN.match(url.strip())
        if not match:
            raise ValueError(
                f"Invalid repository URL: {url}. "
                "Expected https://github.com/<owner>/<repo>"
            )
        return cls(owner=match.group("owner"), repo=match.group("repo"))

    @property
    def slug(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.owner}/{self.repo}"


class ProvisionConfig(BaseModel):
    """Inputs of the runner provisioning pipeline.

    Attributes:
        repo_url: Repository the runner registers against (required)
        service_account: Windows account the runner service logs on as (required)
        app_pool: IIS app pool the runner will deploy to (required)
        deploy_path: Live site directory the runner will deploy to (required)
        runner_name: Runner name; defaults to the local hostname
        runner_labels: Runner labels; defaults to ``[runner_name]``
        runner_version: Pinned runner release
        runner_hash: Expected SHA-256 of the runner archive
        runner_root: Install directory; defaults to one derived from the repo name
        backup_path: Directory receiving deploy backup archives
        service_password: Password of the service account, if it needs one
        admin_group: Local group granting the service account IIS control
        github_api_url: GitHub REST base URL (GitHub Enterprise support)
        token_env: Environment variable holding the personal access token
    """

    model_config = ConfigDict(extra="forbid")

    repo_url: str = Field(..., description="Repository URL")
    service_account: str = Field(..., description="Runner service logon account")
    app_pool: str = Field(..., description="IIS app pool name")
    deploy_path: str = Field(..., description="Live application directory")
    runner_name: str | None = Field(default=None, description="Runner name")
    runner_labels: list[str] = Field(
        default_factory=list, description="Runner labels"
    )
    runner_version: str = Field(
        default=DEFAULT_RUNNER_VERSION, description="Runner release version"
    )
    runner_hash: str | None = Field(
        default=None, description="Expected SHA-256 of the runner archive"
    )
    runner_root: str | None = Field(default=None, description="Runner directory")
    backup_path: str = Field(
        default=DEFAULT_BACKUP_PATH, description="Backup archive directory"
    )
    service_password: str | None = Field(
        default=None, description="Service account password", repr=False
    )
    admin_group: str = Field(
        default=DEFAULT_ADMIN_GROUP, description="Local group for the service account"
    )
    github_api_url: str = Field(
        default=DEFAULT_GITHUB_API_URL, description="GitHub REST API base URL"
    )
    token_env: str = Field(
        default=DEFAULT_TOKEN_ENV, description="Environment variable with the PAT"
    )
    service_settle_seconds: float = Field(
        default=DEFAULT_TIMEOUTS["service_settle"],
        ge=0,
        description="Wait after starting the service before re-checking it",
    )

    @field_validator("repo_url")
    @classmethod
    def validate_repo_url(cls, v: str) -> str:
        """Validate the URL and normalize it to ``<host>/<owner>/<repo>``.

        A trailing ``.git`` or slash is dropped; the runner derives its
        service name from the registered URL.
        """
        match = REPO_URL_PATTERN.match(v.strip())
        if not match:
            raise ValueError(
                f"Invalid repository URL: {v}. "
                "Expected https://github.com/<owner>/<repo>"
            )
        return f"{match.group('base')}/{match.group('owner')}/{match.group('repo')}"

    @field_validator("runner_labels", mode="before")
    @classmethod
    def split_labels(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [label.strip() for label in v.split(",") if label.strip()]
        return v

    @field_validator("runner_version")
    @classmethod
    def validate_runner_version(cls, v: str) -> str:
        """Validate runner version format (strip a leading 'v')."""
        v = v.strip().lstrip("v")
        if not RUNNER_VERSION_PATTERN.match(v):
            raise ValueError(f"Invalid runner version: {v}. Expected e.g. 2.321.0")
        return v

    @field_validator("runner_hash")
    @classmethod
    def validate_runner_hash(cls, v: str | None) -> str | None:
        """Validate SHA-256 hex digest format."""
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if not SHA256_PATTERN.match(v):
            raise ValueError("runner_hash must be a 64 character SHA-256 hex digest")
        return v

    @model_validator(mode="after")
    def apply_derived_defaults(self) -> "ProvisionConfig":
        """Fill runner name, labels and root from other fields."""
        if not self.runner_name:
            self.runner_name = default_runner_name()
        if not self.runner_labels:
            self.runner_labels = [self.runner_name]
        if not self.runner_root:
            self.runner_root = default_runner_root(self.repo.repo)
        return self

    @property
    def repo(self) -> RepoRef:
        """Return the parsed repository reference."""
        return RepoRef.from_url(self.repo_url)

    @property
    def runner_root_path(self) -> Path:
        """Return the runner directory as a Path."""
        return Path(self.runner_root or "")


class CopierKind(str, Enum):
    """Copy engines available to the deploy pipeline."""

    ROBOCOPY = "robocopy"
    MIRROR = "mirror"


class DeployConfig(BaseModel):
    """Inputs of the deploy pipeline.

    Attributes:
        project_path: Project file or directory to publish (required)
        app_pool: IIS app pool hosting the site (required)
        deploy_path: Live application directory (required)
        backup_prefix: File name prefix of backup archives (required)
        runner_label: Label of the runner that executes the deploy (required)
        dotnet_version: SDK version pattern required for the build
        backup_keep: Number of backup archives retained after a deploy
        backup_dir: Directory holding backup archives
        artifact_name: Primary output file checked after deploy; derived
            from the project name when omitted
    """

    model_config = ConfigDict(extra="forbid")

    project_path: str = Field(..., description="Project file or directory")
    app_pool: str = Field(..., description="IIS app pool name")
    deploy_path: str = Field(..., description="Live application directory")
    backup_prefix: str = Field(..., description="Backup archive name prefix")
    runner_label: str = Field(..., description="Runner label running the deploy")
    dotnet_version: str = Field(
        default=DEFAULT_DOTNET_VERSION, description=".NET SDK version pattern"
    )
    backup_keep: int = Field(
        default=DEFAULT_BACKUP_KEEP, ge=1, description="Backups to retain"
    )
    backup_dir: str = Field(
        default=DEFAULT_BACKUP_PATH, description="Backup archive directory"
    )
    build_configuration: str = Field(
        default=DEFAULT_BUILD_CONFIGURATION, description="dotnet build configuration"
    )
    artifact_name: str | None = Field(
        default=None, description="Primary output file expected after deploy"
    )
    copier: CopierKind = Field(
        default=CopierKind.ROBOCOPY, description="Copy engine for the swap"
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="File or directory names never mirrored (e.g. logs)",
    )
    pool_stop_timeout: float = Field(
        default=DEFAULT_TIMEOUTS["pool_stop"],
        gt=0,
        description="Seconds to wait for the app pool to stop",
    )

    @field_validator("backup_prefix")
    @classmethod
    def validate_backup_prefix(cls, v: str) -> str:
        """Validate that the prefix is safe to embed in a file name."""
        if not BACKUP_PREFIX_PATTERN.match(v):
            raise ValueError(
                f"Invalid backup prefix: {v}. "
                "Use letters, numbers, '.', '_' or '-'"
            )
        return v

    @field_validator("dotnet_version")
    @classmethod
    def validate_dotnet_version(cls, v: str) -> str:
        """Validate SDK version pattern such as 8.0.x."""
        if not DOTNET_VERSION_PATTERN.match(v):
            raise ValueError(f"Invalid dotnet version: {v}. Expected e.g. 8.0.x")
        return v

    @field_validator("exclude", mode="before")
    @classmethod
    def split_exclude(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def expected_artifact_name(self) -> str:
        """Return the primary output file name checked after deploy.

        ``src/Shop.Web/Shop.Web.csproj`` and ``src/Shop.Web`` both derive
        ``Shop.Web.dll``.
        """
        if self.artifact_name:
            return self.artifact_name
        # Accept either separator regardless of the host OS
        project = PureWindowsPath(self.project_path.rstrip("/\\"))
        stem = project.stem if project.suffix.lower() == ".csproj" else project.name
        return f"{stem}.dll"
