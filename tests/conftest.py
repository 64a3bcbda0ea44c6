"""Pytest configuration and shared fixtures for iisdeploy tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any

import pytest

from iisdeploy.lib.errors import PoolOperationError
from iisdeploy.models.deployment import PoolState
from iisdeploy.platform.base import AppPoolManager, HostPlatform, ServiceControl
from iisdeploy.platform.process import CommandResult


class FakeCommandRunner:
    """Command runner returning scripted results and recording every call.

    ``responses`` maps a program name (``argv[0]``) to either a
    CommandResult or a callable taking the argv and returning one.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[dict[str, Any]] = []

    def run(
        self,
        args: Sequence[str],
        *,
        operation: str,
        cwd: Path | None = None,
        timeout: float | None = None,
        secrets: Sequence[str | None] = (),
    ) -> CommandResult:
        argv = [str(arg) for arg in args]
        self.calls.append(
            {"args": argv, "operation": operation, "cwd": cwd, "secrets": list(secrets)}
        )
        response = self.responses.get(argv[0], CommandResult(argv, 0))
        if callable(response):
            return response(argv)
        return CommandResult(argv, response.returncode, response.stdout, response.stderr)


class FakeHost(HostPlatform):
    """In-memory local groups and ACLs."""

    def __init__(self) -> None:
        self.groups: dict[str, set[str]] = {}
        self.full_control: set[tuple[str, Path]] = set()
        self.added: list[tuple[str, str]] = []
        self.granted: list[tuple[str, Path]] = []

    def is_group_member(self, account: str, group: str) -> bool:
        return account in self.groups.get(group, set())

    def add_group_member(self, account: str, group: str) -> None:
        self.groups.setdefault(group, set()).add(account)
        self.added.append((account, group))

    def has_full_control(self, account: str, path: Path) -> bool:
        return (account, path) in self.full_control

    def grant_full_control(self, account: str, path: Path) -> None:
        self.full_control.add((account, path))
        self.granted.append((account, path))


class FakeServiceControl(ServiceControl):
    """In-memory service manager.

    Services listed in ``fail_to_start`` stay stopped when started.
    """

    def __init__(self, services: dict[str, str] | None = None) -> None:
        self.services = dict(services or {})
        self.started: list[str] = []
        self.fail_to_start: set[str] = set()

    def get_status(self, name: str) -> str | None:
        return self.services.get(name)

    def list_services(self, pattern: str) -> dict[str, str]:
        prefix = pattern.rstrip("*")
        return {n: s for n, s in self.services.items() if n.startswith(prefix)}

    def start(self, name: str) -> None:
        self.started.append(name)
        if name not in self.fail_to_start:
            self.services[name] = "Running"


class FakePoolManager(AppPoolManager):
    """In-memory IIS app pools.

    ``stop_delay`` is the number of state queries after a stop request that
    still report Stopping; ``None`` means the pool never stops.
    """

    def __init__(
        self,
        pools: dict[str, PoolState] | None = None,
        stop_delay: int | None = 0,
    ) -> None:
        self.pools = dict(pools or {})
        self.stop_delay = stop_delay
        self.calls: list[tuple[str, str]] = []
        self._pending_stops: dict[str, int | None] = {}

    def get_state(self, name: str) -> PoolState:
        if name not in self.pools:
            raise PoolOperationError(
                operation="pool_state", message=f"Cannot find app pool '{name}'"
            )
        if name in self._pending_stops:
            remaining = self._pending_stops[name]
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self._pending_stops[name] = remaining - 1
                return PoolState.STOPPING
            del self._pending_stops[name]
            self.pools[name] = PoolState.STOPPED
        return self.pools[name]

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self._pending_stops[name] = self.stop_delay

    def start(self, name: str) -> None:
        self.calls.append(("start", name))
        self._pending_stops.pop(name, None)
        self.pools[name] = PoolState.STARTED


class FakeClock:
    """Monotonic clock advanced by the injected sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def fake_services() -> FakeServiceControl:
    return FakeServiceControl()


@pytest.fixture
def fake_pools() -> FakePoolManager:
    return FakePoolManager({"Shop": PoolState.STARTED})


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Save the environment and restore it after the test."""
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Undo handler changes made by CLI commands calling setup_logging."""
    yield
    package_logger = logging.getLogger("iisdeploy")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
