"""Models for the deploy (swap) pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_SUFFIX = ".zip"


class PoolState(str, Enum):
    """IIS application pool states as reported by WebAdministration."""

    STARTED = "Started"
    STARTING = "Starting"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str) -> PoolState:
        """Map raw tool output to a state, tolerating case and whitespace."""
        text = value.strip().lower()
        for state in cls:
            if state.value.lower() == text:
                return state
        return cls.UNKNOWN


@dataclass(frozen=True)
class DeployTarget:
    """The live application: its pool, its directory and its main output."""

    app_pool_name: str
    deploy_path: Path
    expected_artifact_name: str

    @property
    def artifact_path(self) -> Path:
        """Return the full path of the primary output file."""
        return self.deploy_path / self.expected_artifact_name


@dataclass(frozen=True, order=True)
class BackupArchive:
    """A zip snapshot of the live directory taken before a swap.

    Instances order by timestamp, so ``sorted()`` yields oldest first.
    """

    timestamp: datetime
    prefix: str = field(compare=False)
    path: Path = field(compare=False)

    @staticmethod
    def file_name(prefix: str, timestamp: datetime) -> str:
        """Return ``<prefix>_<YYYYMMDD>_<HHmmss>.zip``."""
        return f"{prefix}_{timestamp.strftime(BACKUP_TIMESTAMP_FORMAT)}{BACKUP_SUFFIX}"

    @classmethod
    def parse(cls, path: Path, prefix: str) -> BackupArchive | None:
        """Parse an archive path; return None when it does not match the prefix."""
        pattern = re.compile(
            rf"^{re.escape(prefix)}_(?P<stamp>\d{{8}}_\d{{6}}){re.escape(BACKUP_SUFFIX)}$"
        )
        match = pattern.match(path.name)
        if not match:
            return None
        try:
            timestamp = datetime.strptime(match.group("stamp"), BACKUP_TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return cls(timestamp=timestamp, prefix=prefix, path=path)


@dataclass(frozen=True)
class CheckResult:
    """One post-deploy consistency check."""

    name: str
    passed: bool
    detail: str


@dataclass
class VerificationReport:
    """Outcome of the post-deploy checks; passes only if every check passes."""

    checks: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[str]:
        return [check.detail for check in self.checks if not check.passed]


@dataclass
class DeployReport:
    """What a deploy run did, step by step.

    Attributes:
        target: The application that was deployed
        backup: Archive taken before the swap, None on a first deploy
        copy_exit_code: Exit code reported by the copy engine
        verification: Result of the post-deploy checks
        pruned: Archives deleted by the retention policy
        steps: Completed step names, in order
    """

    target: DeployTarget
    backup: BackupArchive | None = None
    copy_exit_code: int | None = None
    verification: VerificationReport | None = None
    pruned: list[BackupArchive] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.verification is not None and self.verification.passed
