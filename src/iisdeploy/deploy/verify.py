"""Post-deploy consistency checks."""

from __future__ import annotations

import logging
from pathlib import Path

from iisdeploy.lib.errors import PoolOperationError
from iisdeploy.lib.ui import ANSIColors, colorize
from iisdeploy.models.deployment import (
    CheckResult,
    DeployTarget,
    PoolState,
    VerificationReport,
)
from iisdeploy.platform.base import AppPoolManager

logger = logging.getLogger(__name__)


class VerificationReporter:
    """Check that the app pool runs and the primary artifact is in place."""

    def __init__(self, pools: AppPoolManager) -> None:
        self._pools = pools

    def check_pool(self, name: str) -> CheckResult:
        try:
            state = self._pools.get_state(name)
        except PoolOperationError as exc:
            return CheckResult(
                name="app_pool", passed=False, detail=f"App pool '{name}': {exc.message}"
            )
        passed = state == PoolState.STARTED
        return CheckResult(
            name="app_pool",
            passed=passed,
            detail=f"App pool '{name}' is {state.value}",
        )

    def check_file(self, path: Path) -> CheckResult:
        passed = path.is_file()
        detail = f"{path} is present" if passed else f"{path} is missing"
        return CheckResult(name="artifact", passed=passed, detail=detail)

    def verify(self, target: DeployTarget) -> VerificationReport:
        """Run every check against the deployed target."""
        report = VerificationReport(
            checks=[
                self.check_pool(target.app_pool_name),
                self.check_file(target.artifact_path),
            ]
        )
        for check in report.checks:
            if check.passed:
                logger.info(f"PASS {check.detail}")
            else:
                logger.error(f"FAIL {check.detail}")
        return report

    @staticmethod
    def render(report: VerificationReport, force_tty: bool | None = None) -> list[str]:
        """Return one colorized console line per check plus a summary line."""
        lines = []
        for check in report.checks:
            if check.passed:
                lines.append(colorize(f"  PASS  {check.detail}", ANSIColors.GREEN, force_tty))
            else:
                lines.append(colorize(f"  FAIL  {check.detail}", ANSIColors.RED, force_tty))
        if report.passed:
            lines.append(colorize("Verification passed", ANSIColors.GREEN, force_tty))
        else:
            lines.append(colorize("Verification failed", ANSIColors.RED, force_tty))
        return lines
