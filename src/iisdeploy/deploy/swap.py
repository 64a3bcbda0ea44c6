"""Swap a new build into the live IIS application.

Order: backup, stop pool, copy, start pool, verify, prune. The pool is
always stopped before any file is written and a failed step stops the
run; nothing is rolled back automatically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from iisdeploy.config.defaults import DEFAULT_BACKUP_KEEP, DEFAULT_TIMEOUTS
from iisdeploy.deploy.backup import backup_if_exists, prune_backups
from iisdeploy.deploy.copier import FileCopier
from iisdeploy.deploy.iis import AppPoolController
from iisdeploy.deploy.verify import VerificationReporter
from iisdeploy.lib.errors import DeploymentError, VerificationFailedError
from iisdeploy.models.deployment import DeployReport, DeployTarget
from iisdeploy.platform.base import AppPoolManager

logger = logging.getLogger(__name__)


class DeploymentSwapEngine:
    """Run the backup and swap sequence for one application.

    ``last_report`` holds the progress of the most recent run, including
    when it raised, so callers can record which steps completed.

    Example:
        >>> engine = DeploymentSwapEngine(create_pool_manager(), RobocopyCopier())
        >>> report = engine.run(Path("publish"), target, Path("C:/deploy-backups"), "shop")
    """

    def __init__(
        self,
        pools: AppPoolManager,
        copier: FileCopier,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        pool_stop_timeout: float = DEFAULT_TIMEOUTS["pool_stop"],
    ) -> None:
        self.copier = copier
        self.controller = AppPoolController(pools, clock=monotonic, sleep=sleep)
        self.verifier = VerificationReporter(pools)
        self.pool_stop_timeout = pool_stop_timeout
        self._clock = clock
        self.last_report: DeployReport | None = None

    def run(
        self,
        source: Path,
        target: DeployTarget,
        backup_dir: Path,
        prefix: str,
        keep: int = DEFAULT_BACKUP_KEEP,
    ) -> DeployReport:
        """Swap the build in source into the target.

        Raises:
            DeploymentError: If the source directory is missing
            PoolStopTimeoutError: Pool did not stop; no files were copied
            CopyError: Copy failed; the pool is left stopped
            VerificationFailedError: Checks failed after the swap; names the
                backup archive to restore from
        """
        report = DeployReport(target=target)
        self.last_report = report

        if not source.is_dir():
            raise DeploymentError(
                operation="copy_files",
                message=f"Build output {source} does not exist",
                remediation="Run the build first or pass the published directory.",
            )

        report.backup = backup_if_exists(
            target.deploy_path, backup_dir, prefix, clock=self._clock
        )
        report.steps.append("backup")

        self.controller.stop_pool(target.app_pool_name, timeout=self.pool_stop_timeout)
        report.steps.append("stop_pool")

        report.copy_exit_code = self.copier.copy_files(source, target.deploy_path)
        report.steps.append("copy_files")

        self.controller.start_pool(target.app_pool_name)
        report.steps.append("start_pool")

        report.verification = self.verifier.verify(target)
        report.steps.append("verify")
        if not report.verification.passed:
            backup_path = report.backup.path if report.backup else None
            raise VerificationFailedError(report.verification.failures, backup_path)

        report.pruned = prune_backups(backup_dir, prefix, keep)
        report.steps.append("prune_backups")

        logger.info(
            f"Deployed to '{target.app_pool_name}' at {target.deploy_path}"
            + (f" (backup {report.backup.path.name})" if report.backup else "")
        )
        return report
