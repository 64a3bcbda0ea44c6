"""Host capability interfaces and their Windows implementations."""

from __future__ import annotations

from iisdeploy.platform.base import AppPoolManager, HostPlatform, ServiceControl
from iisdeploy.platform.process import CommandResult, CommandRunner


def create_host(runner: CommandRunner | None = None) -> HostPlatform:
    """Create the host platform for the running operating system."""
    from iisdeploy.platform.windows import WindowsHost

    return WindowsHost(runner)


def create_service_control(runner: CommandRunner | None = None) -> ServiceControl:
    """Create the service manager for the running operating system."""
    from iisdeploy.platform.windows import WindowsServiceControl

    return WindowsServiceControl(runner)


def create_pool_manager(runner: CommandRunner | None = None) -> AppPoolManager:
    """Create the IIS app pool manager."""
    from iisdeploy.platform.windows import IISAppPoolManager

    return IISAppPoolManager(runner)


__all__ = [
    "AppPoolManager",
    "CommandResult",
    "CommandRunner",
    "HostPlatform",
    "ServiceControl",
    "create_host",
    "create_pool_manager",
    "create_service_control",
]
