"""Idempotent creation of directories, group memberships and ACL grants."""

from __future__ import annotations

import logging
from pathlib import Path

from iisdeploy.lib.confirm import Confirm
from iisdeploy.lib.errors import ProvisioningError
from iisdeploy.models.provision import (
    EnsureResult,
    GrantResult,
    MembershipOutcome,
    MembershipResult,
)
from iisdeploy.platform.base import HostPlatform

logger = logging.getLogger(__name__)


class ResourceProvisioner:
    """Create or adopt host resources without duplicating work.

    Every operation checks the current state first, so a second run with
    the same inputs changes nothing and reports a no-op instead of failing.
    """

    def __init__(self, host: HostPlatform, confirm: Confirm) -> None:
        self._host = host
        self._confirm = confirm

    def ensure_directory(self, path: Path) -> EnsureResult:
        """Create the directory (and parents) unless it already exists.

        Raises:
            ProvisioningError: If the path exists as a file or cannot be created
        """
        if path.is_dir():
            logger.info(f"Directory already exists: {path}")
            return EnsureResult.ALREADY_EXISTS
        if path.exists():
            raise ProvisioningError(
                operation="ensure_directory",
                message=f"{path} exists but is not a directory",
                remediation="Remove or rename the file, then re-run.",
            )
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ProvisioningError(
                operation="ensure_directory",
                message=f"Could not create {path}: {exc}",
                remediation="Run the installer from an elevated (Administrator) shell.",
            ) from exc
        logger.info(f"Created directory: {path}")
        return EnsureResult.CREATED

    def ensure_group_membership(self, account: str, group: str) -> MembershipOutcome:
        """Add the account to a local group after explicit confirmation.

        Group changes affect the whole machine, so they are never applied
        without the operator's approval.
        """
        if self._host.is_group_member(account, group):
            logger.info(f"'{account}' is already a member of '{group}'")
            return MembershipOutcome(MembershipResult.ALREADY_MEMBER)

        prompt = (
            f"Add '{account}' to the local '{group}' group? "
            "This grants machine-wide rights"
        )
        if not self._confirm(prompt):
            reason = f"operator declined adding '{account}' to '{group}'"
            logger.warning(f"Skipped group membership: {reason}")
            return MembershipOutcome(MembershipResult.SKIPPED, reason=reason)

        self._host.add_group_member(account, group)
        logger.info(f"Added '{account}' to '{group}'")
        return MembershipOutcome(MembershipResult.ADDED)

    def grant_full_control(self, account: str, path: Path) -> GrantResult:
        """Grant the account inherited full control on the directory."""
        if self._host.has_full_control(account, path):
            logger.info(f"'{account}' already has full control on {path}")
            return GrantResult.ALREADY_GRANTED
        self._host.grant_full_control(account, path)
        logger.info(f"Granted '{account}' full control on {path}")
        return GrantResult.GRANTED
