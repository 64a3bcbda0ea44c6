"""Models for the runner provisioning pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from iisdeploy.models.config import ProvisionConfig, RepoRef

SERVICE_PREFIX = "actions.runner"


class ServerIdentity(BaseModel):
    """Identity of this machine's runner. Immutable for an installation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hostname: str = Field(..., description="Local machine name")
    service_account: str = Field(..., description="Runner service logon account")
    runner_name: str = Field(..., description="Name registered with GitHub")
    labels: tuple[str, ...] = Field(default=(), description="Runner labels")


class TokenScope(str, Enum):
    """Purpose of a short-lived runner token."""

    REGISTRATION = "registration"
    REMOVE = "remove"


class RegistrationToken(BaseModel):
    """Short-lived, single-use runner registration token. Never persisted."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., repr=False, description="Token value")
    expires_at: datetime | None = Field(default=None, description="Expiry time")

    def __str__(self) -> str:
        return f"RegistrationToken(expires_at={self.expires_at})"


class Principal(BaseModel):
    """Authenticated GitHub user behind the personal credential."""

    model_config = ConfigDict(extra="ignore")

    login: str
    id: int | None = None


class InstallationState(str, Enum):
    """Lifecycle of a runner installation directory."""

    ABSENT = "absent"
    EXTRACTED = "extracted"
    CONFIGURED = "configured"
    SERVICE_INSTALLED = "service-installed"
    RUNNING = "running"


@dataclass
class AgentInstallation:
    """A runner installation rooted at one directory.

    Attributes:
        root_path: Install directory (one installation per directory)
        state: Detected lifecycle state
        configured_name: Runner name from the ``.runner`` marker, if configured
        registered_url: Repository URL from the ``.runner`` marker
        service_name: Windows service name once installed
    """

    root_path: Path
    state: InstallationState = InstallationState.ABSENT
    configured_name: str | None = None
    registered_url: str | None = None
    service_name: str | None = None

    @property
    def is_configured(self) -> bool:
        """True when an existing registration marker was found."""
        return self.state in (
            InstallationState.CONFIGURED,
            InstallationState.SERVICE_INSTALLED,
            InstallationState.RUNNING,
        )


class EnsureResult(str, Enum):
    """Outcome of an idempotent create operation."""

    CREATED = "created"
    ALREADY_EXISTS = "already-exists"


class GrantResult(str, Enum):
    """Outcome of an idempotent permission grant."""

    GRANTED = "granted"
    ALREADY_GRANTED = "already-granted"


class MembershipResult(str, Enum):
    """Outcome of an idempotent group membership change."""

    ADDED = "added"
    ALREADY_MEMBER = "already-member"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MembershipOutcome:
    """Group membership result with the reason when skipped."""

    result: MembershipResult
    reason: str | None = None


@dataclass(frozen=True)
class ServiceQuery:
    """Typed lookup of one runner service by owner, repository and runner name."""

    owner: str
    repo: str
    runner_name: str

    @classmethod
    def for_repo(cls, repo: RepoRef, runner_name: str) -> ServiceQuery:
        """Build a query from a parsed repository reference."""
        return cls(owner=repo.owner, repo=repo.repo, runner_name=runner_name)

    @property
    def service_name(self) -> str:
        """Return the exact Windows service name the runner installs."""
        return f"{SERVICE_PREFIX}.{self.owner}-{self.repo}.{self.runner_name}"

    @property
    def sibling_pattern(self) -> str:
        """Return the wildcard matching every runner service on the machine."""
        return f"{SERVICE_PREFIX}.*"


@dataclass(frozen=True)
class ServiceHandle:
    """A located Windows service and its last observed status."""

    name: str
    status: str

    @property
    def is_running(self) -> bool:
        """True when the service reports the running state."""
        return self.status.lower() == "running"


@dataclass
class ProvisionReport:
    """Everything the provisioning pipeline changed or left untouched."""

    changes: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def changed(self, message: str) -> None:
        """Record a step that mutated the machine."""
        self.changes.append(message)

    def noop(self, message: str) -> None:
        """Record a step that found the desired state already in place."""
        self.unchanged.append(message)

    def warn(self, message: str) -> None:
        """Record a non-blocking warning."""
        self.warnings.append(message)


@dataclass
class ProvisionContext:
    """State threaded through every provisioning step.

    The registration token lives here and only here; it is dropped when the
    run ends.
    """

    config: ProvisionConfig
    identity: ServerIdentity
    repo: RepoRef
    runner_root: Path
    download_dir: Path
    principal: Principal | None = None
    token: RegistrationToken | None = None
    installation: AgentInstallation | None = None
    removal_confirmed: bool = False
    service: ServiceHandle | None = None
    report: ProvisionReport = field(default_factory=ProvisionReport)

    @classmethod
    def from_config(
        cls, config: ProvisionConfig, hostname: str | None = None
    ) -> ProvisionContext:
        """Resolve identity and paths from a validated configuration."""
        runner_name = config.runner_name or ""
        identity = ServerIdentity(
            hostname=hostname or runner_name,
            service_account=config.service_account,
            runner_name=runner_name,
            labels=tuple(config.runner_labels),
        )
        runner_root = config.runner_root_path
        return cls(
            config=config,
            identity=identity,
            repo=config.repo,
            runner_root=runner_root,
            download_dir=runner_root.parent,
        )

    @property
    def service_query(self) -> ServiceQuery:
        """Return the typed lookup for this runner's service."""
        return ServiceQuery.for_repo(self.repo, self.identity.runner_name)
