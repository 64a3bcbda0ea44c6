"""Capability interfaces for the host machine.

Pipelines only talk to the operating system, the service manager and IIS
through these interfaces; ``iisdeploy.platform.windows`` implements them with
the native Windows tools.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from iisdeploy.models.deployment import PoolState


class HostPlatform(ABC):
    """Local accounts, groups and file permissions."""

    @abstractmethod
    def is_group_member(self, account: str, group: str) -> bool:
        """Return True when the account is already a member of the local group.

        Raises:
            ProvisioningError: If the group cannot be queried.
        """

    @abstractmethod
    def add_group_member(self, account: str, group: str) -> None:
        """Add the account to the local group.

        Raises:
            ProvisioningError: If the membership change fails.
        """

    @abstractmethod
    def has_full_control(self, account: str, path: Path) -> bool:
        """Return True when the account holds an inherited full-control ACE.

        Raises:
            ProvisioningError: If the ACL cannot be read.
        """

    @abstractmethod
    def grant_full_control(self, account: str, path: Path) -> None:
        """Grant the account inherited full control on the directory tree.

        Raises:
            ProvisioningError: If the ACL change fails.
        """


class ServiceControl(ABC):
    """Operating-system service manager."""

    @abstractmethod
    def get_status(self, name: str) -> str | None:
        """Return the service status (e.g. "Running"), or None when absent."""

    @abstractmethod
    def list_services(self, pattern: str) -> dict[str, str]:
        """Return ``{name: status}`` for services matching a wildcard pattern."""

    @abstractmethod
    def start(self, name: str) -> None:
        """Start exactly the named service.

        Raises:
            DeploymentError: If the start command fails.
        """


class AppPoolManager(ABC):
    """IIS application pool control."""

    @abstractmethod
    def get_state(self, name: str) -> PoolState:
        """Return the current state of the app pool.

        Raises:
            PoolOperationError: If the pool does not exist or cannot be queried.
        """

    @abstractmethod
    def stop(self, name: str) -> None:
        """Request the app pool to stop. Returns without waiting."""

    @abstractmethod
    def start(self, name: str) -> None:
        """Request the app pool to start."""
