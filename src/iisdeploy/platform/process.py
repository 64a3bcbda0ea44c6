"""External command execution.

All host tools (PowerShell, net.exe, icacls, robocopy, the runner's
config.cmd, dotnet) are invoked through ``CommandRunner`` so pipelines can be
exercised against a fake runner in tests.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from iisdeploy.lib.errors import DeploymentError
from iisdeploy.lib.logging_config import redact

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command.

    Attributes:
        args: The command line that was executed
        returncode: Process exit status
        stdout: Captured standard output
        stderr: Captured standard error
    """

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Return stdout and stderr joined, stripped."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part).strip()


class CommandRunner:
    """Run external commands and capture their output."""

    def run(
        self,
        args: Sequence[str],
        *,
        operation: str,
        cwd: Path | None = None,
        timeout: float | None = None,
        secrets: Sequence[str | None] = (),
    ) -> CommandResult:
        """Run a command and return its result without raising on exit status.

        Args:
            args: Program and arguments
            operation: Pipeline step name used in error messages
            cwd: Working directory
            timeout: Seconds before the command is abandoned
            secrets: Values masked when the command line is logged

        Returns:
            CommandResult with exit status and captured output

        Raises:
            DeploymentError: If the program cannot be started or times out
        """
        argv = [str(arg) for arg in args]
        logger.debug(f"Running: {redact(' '.join(argv), *secrets)}")
        try:
            completed = subprocess.run(  # noqa: S603  # nosec B603
                argv,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            raise DeploymentError(
                operation=operation,
                message=f"Program not found: {argv[0]}",
                remediation=f"Install {argv[0]} or add it to PATH.",
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise DeploymentError(
                operation=operation,
                message=f"{argv[0]} did not finish within {timeout:g}s",
            ) from exc
        except OSError as exc:
            raise DeploymentError(
                operation=operation,
                message=f"Failed to start {argv[0]}: {exc}",
            ) from exc

        result = CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        logger.debug(f"{argv[0]} exited with {result.returncode}")
        return result


def powershell(script: str) -> list[str]:
    """Return the argv running a PowerShell snippet non-interactively."""
    return [
        "powershell.exe",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"
