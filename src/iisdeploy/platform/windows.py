"""Windows implementations of the host capability interfaces."""

from __future__ import annotations

import logging
from pathlib import Path

from iisdeploy.lib.errors import DeploymentError, PoolOperationError, ProvisioningError
from iisdeploy.models.deployment import PoolState
from iisdeploy.platform.base import AppPoolManager, HostPlatform, ServiceControl
from iisdeploy.platform.process import CommandRunner, powershell, ps_quote

logger = logging.getLogger(__name__)


def _short_account(account: str) -> str:
    """Strip a ``DOMAIN\\`` or ``.\\`` qualifier and lowercase the name."""
    return account.rsplit("\\", 1)[-1].strip().lower()


def _same_account(left: str, right: str) -> bool:
    if left.strip().lower() == right.strip().lower():
        return True
    # Local accounts are listed without the machine qualifier
    return _short_account(left) == _short_account(right)


def parse_group_members(output: str) -> list[str]:
    """Parse member names out of ``net localgroup <group>`` output."""
    members: list[str] = []
    in_members = False
    for raw in output.splitlines():
        line = raw.strip()
        if line.startswith("---"):
            in_members = True
            continue
        if not in_members or not line:
            continue
        if line.lower().startswith("the command completed"):
            break
        members.append(line)
    return members


def parse_acl_entries(output: str, path: Path) -> list[tuple[str, str]]:
    """Parse ``(principal, rights)`` pairs out of ``icacls <path>`` output."""
    entries: list[tuple[str, str]] = []
    prefix = str(path)
    for raw in output.splitlines():
        line = raw.strip()
        if not line or line.lower().startswith("successfully processed"):
            continue
        if line.startswith(prefix):
            line = line[len(prefix) :].strip()
        principal, sep, rights = line.partition(":")
        if sep:
            entries.append((principal.strip(), rights.strip()))
    return entries


class WindowsHost(HostPlatform):
    """Local groups via ``net localgroup`` and ACLs via ``icacls``."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def is_group_member(self, account: str, group: str) -> bool:
        result = self._runner.run(
            ["net", "localgroup", group], operation="ensure_group_membership"
        )
        if not result.ok:
            raise ProvisioningError(
                operation="ensure_group_membership",
                message=f"Could not list members of '{group}': {result.output}",
                remediation="Run the installer from an elevated (Administrator) shell.",
            )
        return any(
            _same_account(member, account)
            for member in parse_group_members(result.stdout)
        )

    def add_group_member(self, account: str, group: str) -> None:
        result = self._runner.run(
            ["net", "localgroup", group, account, "/add"],
            operation="ensure_group_membership",
        )
        if not result.ok:
            raise ProvisioningError(
                operation="ensure_group_membership",
                message=f"Could not add '{account}' to '{group}': {result.output}",
                remediation=(
                    "Check that the account exists and the shell is elevated, "
                    f"or add it manually: net localgroup \"{group}\" {account} /add"
                ),
            )

    def has_full_control(self, account: str, path: Path) -> bool:
        result = self._runner.run(["icacls", str(path)], operation="grant_full_control")
        if not result.ok:
            raise ProvisioningError(
                operation="grant_full_control",
                message=f"Could not read ACL of {path}: {result.output}",
            )
        for principal, rights in parse_acl_entries(result.stdout, path):
            if not _same_account(principal, account):
                continue
            if "(F)" in rights and "(OI)" in rights and "(CI)" in rights:
                return True
        return False

    def grant_full_control(self, account: str, path: Path) -> None:
        result = self._runner.run(
            ["icacls", str(path), "/grant", f"{account}:(OI)(CI)F", "/T", "/Q"],
            operation="grant_full_control",
        )
        if not result.ok:
            raise ProvisioningError(
                operation="grant_full_control",
                message=f"Could not grant '{account}' full control on {path}: "
                f"{result.output}",
                remediation="Run the installer from an elevated (Administrator) shell.",
            )


class WindowsServiceControl(ServiceControl):
    """Windows services via PowerShell ``Get-Service`` / ``Start-Service``."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def get_status(self, name: str) -> str | None:
        services = self.list_services(name)
        for service_name, status in services.items():
            if service_name.lower() == name.lower():
                return status
        return None

    def list_services(self, pattern: str) -> dict[str, str]:
        script = (
            f"Get-Service -Name {ps_quote(pattern)} -ErrorAction SilentlyContinue | "
            'ForEach-Object { "{0}|{1}" -f $_.Name, $_.Status }'
        )
        result = self._runner.run(powershell(script), operation="locate_service")
        services: dict[str, str] = {}
        for line in result.stdout.splitlines():
            name, sep, status = line.strip().partition("|")
            if sep:
                services[name] = status
        return services

    def start(self, name: str) -> None:
        script = f"Start-Service -Name {ps_quote(name)} -ErrorAction Stop"
        result = self._runner.run(powershell(script), operation="ensure_running")
        if not result.ok:
            raise DeploymentError(
                operation="ensure_running",
                message=f"Start-Service '{name}' failed: {result.output}",
                remediation="Check the service logon account's password and rights.",
            )


class IISAppPoolManager(AppPoolManager):
    """IIS app pools via the WebAdministration PowerShell module."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def _invoke(self, script: str, operation: str) -> str:
        result = self._runner.run(
            powershell(f"Import-Module WebAdministration; {script}"),
            operation=operation,
        )
        if not result.ok:
            raise PoolOperationError(
                operation=operation,
                message=result.output or f"exit code {result.returncode}",
                remediation="Check the app pool name in IIS Manager.",
            )
        return result.stdout

    def get_state(self, name: str) -> PoolState:
        output = self._invoke(
            f"(Get-WebAppPoolState -Name {ps_quote(name)} -ErrorAction Stop).Value",
            operation="pool_state",
        )
        return PoolState.parse(output)

    def stop(self, name: str) -> None:
        self._invoke(
            f"Stop-WebAppPool -Name {ps_quote(name)} -ErrorAction Stop",
            operation="stop_pool",
        )

    def start(self, name: str) -> None:
        self._invoke(
            f"Start-WebAppPool -Name {ps_quote(name)} -ErrorAction Stop",
            operation="start_pool",
        )
