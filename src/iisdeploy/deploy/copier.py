"""Mirror a build output into the live application directory.

Both engines report robocopy's exit code convention: a bit mask where 1
means files were copied, 2 extra files were deleted, 4 mismatches were
seen, and 8 or more means at least one failure.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from iisdeploy.lib.errors import CopyError
from iisdeploy.models.config import CopierKind
from iisdeploy.platform.process import CommandRunner

logger = logging.getLogger(__name__)

COPY_FAILURE_THRESHOLD = 8

EXIT_CODE_BITS = {
    1: "files copied",
    2: "extra files removed from destination",
    4: "mismatched files or directories detected",
    8: "some files could not be copied",
    16: "fatal error, nothing copied",
}

# Filesystems such as FAT store modification times at 2 second resolution
MTIME_TOLERANCE = 2.0


def describe_exit_code(code: int) -> str:
    """Return a readable meaning of a robocopy-style exit code."""
    if code == 0:
        return "no changes; destination already in sync"
    parts = [text for bit, text in EXIT_CODE_BITS.items() if code & bit]
    return ", ".join(parts) or f"unknown exit code {code}"


def interpret(code: int, source: Path, destination: Path) -> int:
    """Log the exit code meaning and raise on failure codes.

    Raises:
        CopyError: If code is 8 or higher
    """
    meaning = describe_exit_code(code)
    if code >= COPY_FAILURE_THRESHOLD:
        logger.error(f"Copy exit code {code}: {meaning}")
        raise CopyError(code, source, destination)
    logger.info(f"Copy exit code {code}: {meaning}")
    return code


class FileCopier(ABC):
    """Copy engine making the destination an exact mirror of the source."""

    def __init__(self, exclude: Sequence[str] = ()) -> None:
        self.exclude = tuple(exclude)

    @abstractmethod
    def mirror(self, source: Path, destination: Path) -> int:
        """Mirror source into destination; return the raw exit code."""

    def copy_files(self, source: Path, destination: Path) -> int:
        """Mirror and interpret the exit code.

        Returns:
            The exit code (always below 8)

        Raises:
            CopyError: If the engine reported a failure
        """
        logger.info(f"Mirroring {source} -> {destination}")
        return interpret(self.mirror(source, destination), source, destination)


class RobocopyCopier(FileCopier):
    """Mirror with the native robocopy tool."""

    RETRIES = 2
    WAIT_SECONDS = 2

    def __init__(
        self, runner: CommandRunner | None = None, exclude: Sequence[str] = ()
    ) -> None:
        super().__init__(exclude)
        self._runner = runner or CommandRunner()

    def build_args(self, source: Path, destination: Path) -> list[str]:
        """Return the robocopy command line."""
        args = [
            "robocopy",
            str(source),
            str(destination),
            "/MIR",
            f"/R:{self.RETRIES}",
            f"/W:{self.WAIT_SECONDS}",
            "/NFL",
            "/NDL",
            "/NP",
        ]
        if self.exclude:
            args += ["/XD", *self.exclude, "/XF", *self.exclude]
        return args

    def mirror(self, source: Path, destination: Path) -> int:
        result = self._runner.run(
            self.build_args(source, destination), operation="copy_files"
        )
        if result.returncode >= COPY_FAILURE_THRESHOLD and result.output:
            logger.error(result.output)
        elif result.output:
            logger.debug(result.output)
        return result.returncode


class MirrorCopier(FileCopier):
    """Portable pure-Python mirror with robocopy-compatible exit codes.

    Files are copied when missing, different in size, or with a different
    modification time. Destination entries absent from the source are
    deleted. Excluded names are neither copied nor deleted.
    """

    def mirror(self, source: Path, destination: Path) -> int:
        if not source.is_dir():
            logger.error(f"Source directory {source} does not exist")
            return 16

        copied = 0
        removed = 0
        failures = 0

        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Cannot create {destination}: {exc}")
            return 16

        for src in sorted(source.rglob("*")):
            rel = src.relative_to(source)
            if self._excluded(rel):
                continue
            dst = destination / rel
            try:
                if src.is_dir():
                    if dst.exists() and not dst.is_dir():
                        dst.unlink()
                    dst.mkdir(exist_ok=True)
                elif self._needs_copy(src, dst):
                    if dst.is_dir():
                        shutil.rmtree(dst)
                    shutil.copy2(src, dst)
                    copied += 1
            except OSError as exc:
                logger.error(f"Failed to copy {rel}: {exc}")
                failures += 1

        # Deepest paths first so directories are empty before removal
        for dst in sorted(destination.rglob("*"), reverse=True):
            rel = dst.relative_to(destination)
            if self._excluded(rel) or (source / rel).exists():
                continue
            try:
                if dst.is_dir():
                    shutil.rmtree(dst)
                else:
                    dst.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error(f"Failed to remove extra {rel}: {exc}")
                failures += 1

        code = 0
        if copied:
            code |= 1
        if removed:
            code |= 2
        if failures:
            code |= 8
        logger.debug(f"Mirror copied {copied}, removed {removed}, failed {failures}")
        return code

    def _excluded(self, rel: Path) -> bool:
        return any(part in self.exclude for part in rel.parts)

    @staticmethod
    def _needs_copy(src: Path, dst: Path) -> bool:
        if not dst.is_file():
            return True
        src_stat = src.stat()
        dst_stat = dst.stat()
        if src_stat.st_size != dst_stat.st_size:
            return True
        return abs(src_stat.st_mtime - dst_stat.st_mtime) > MTIME_TOLERANCE


def create_copier(
    kind: CopierKind,
    runner: CommandRunner | None = None,
    exclude: Sequence[str] = (),
) -> FileCopier:
    """Create a copy engine by kind.

    Raises:
        ValueError: If the kind is not supported
    """
    if kind == CopierKind.ROBOCOPY:
        return RobocopyCopier(runner, exclude)
    if kind == CopierKind.MIRROR:
        return MirrorCopier(exclude)
    raise ValueError(f"Unsupported copier: {kind}")
