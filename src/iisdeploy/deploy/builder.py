"""Build the application with the .NET SDK."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from iisdeploy.lib.errors import BuildError
from iisdeploy.platform.process import CommandRunner

logger = logging.getLogger(__name__)

# "8.0.404 [C:\Program Files\dotnet\sdk]"
SDK_LINE_PATTERN = re.compile(r"^(?P<version>\d+\.\d+\.\d+)(?:-\S+)?\s+\[")

# Lines of tool output kept in error messages
OUTPUT_TAIL_LINES = 40


@dataclass
class PublishResult:
    """Result of a ``dotnet publish``.

    Attributes:
        project: Project file or directory that was published
        output_dir: Directory holding the published application
        sdk_version: SDK version that produced it
    """

    project: Path
    output_dir: Path
    sdk_version: str | None = None


def parse_sdk_versions(output: str) -> list[str]:
    """Parse ``dotnet --list-sdks`` output into version strings."""
    versions = []
    for line in output.splitlines():
        match = SDK_LINE_PATTERN.match(line.strip())
        if match:
            versions.append(match.group("version"))
    return versions


def version_matches(version: str, pattern: str) -> bool:
    """Match ``8.0.404`` against patterns like ``8.0.x`` or ``8.0.404``."""
    wanted = pattern.split(".")
    actual = version.split(".")
    if len(actual) < len(wanted):
        return False
    return all(w in ("x", "*") or w == a for w, a in zip(wanted, actual, strict=False))


def _tail(output: str) -> str:
    return "\n".join(output.splitlines()[-OUTPUT_TAIL_LINES:])


class DotnetBuilder:
    """Publish a .NET project to a staging directory."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def check_sdk(self, version_pattern: str) -> str:
        """Return the newest installed SDK matching the pattern.

        Raises:
            BuildError: If no matching SDK is installed
        """
        result = self._runner.run(["dotnet", "--list-sdks"], operation="build")
        installed = parse_sdk_versions(result.stdout)
        matching = [v for v in installed if version_matches(v, version_pattern)]
        if not result.ok or not matching:
            found = ", ".join(installed) or "none"
            raise BuildError(
                f".NET SDK {version_pattern} is not installed (found: {found})",
                output=result.output,
            )
        best = max(matching, key=lambda v: tuple(int(p) for p in v.split(".")))
        logger.info(f"Using .NET SDK {best}")
        return best

    def publish(
        self,
        project: Path,
        output_dir: Path,
        configuration: str = "Release",
        sdk_version: str | None = None,
    ) -> PublishResult:
        """Run ``dotnet publish`` into output_dir.

        Raises:
            BuildError: If the build fails or produces no files
        """
        args = [
            "dotnet",
            "publish",
            str(project),
            "--configuration",
            configuration,
            "--output",
            str(output_dir),
            "--nologo",
        ]
        logger.info(f"Publishing {project} ({configuration}) to {output_dir}")
        result = self._runner.run(args, operation="build")
        if not result.ok:
            raise BuildError(
                f"dotnet publish exited with {result.returncode}:\n{_tail(result.output)}",
                output=result.output,
            )
        if not output_dir.is_dir() or not any(output_dir.iterdir()):
            raise BuildError(f"dotnet publish produced no files in {output_dir}")
        return PublishResult(project=project, output_dir=output_dir, sdk_version=sdk_version)
