"""Backup archives of the live application directory.

Archives are named ``<prefix>_<YYYYMMDD>_<HHmmss>.zip`` and ordered by the
timestamp embedded in the name, never by file system dates.
"""

from __future__ import annotations

import logging
import os
import zipfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from iisdeploy.lib.errors import DeploymentError
from iisdeploy.models.deployment import BackupArchive

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


def backup_if_exists(
    deploy_path: Path,
    backup_dir: Path,
    prefix: str,
    clock: Callable[[], datetime] = datetime.now,
) -> BackupArchive | None:
    """Zip the live directory into the backup directory.

    A missing deploy path means a first deploy: nothing is archived and
    None is returned. The archive is written under a temporary name and
    renamed into place, so a same-second archive is replaced whole.

    Raises:
        DeploymentError: If the archive cannot be written
    """
    if not deploy_path.exists():
        logger.info(f"{deploy_path} does not exist yet; first deploy, no backup taken")
        return None
    if not deploy_path.is_dir():
        raise DeploymentError(
            operation="backup",
            message=f"Deploy path {deploy_path} is not a directory",
            remediation="Point --deploy-path at the site's root directory.",
        )

    timestamp = clock().replace(microsecond=0)
    final_path = backup_dir / BackupArchive.file_name(prefix, timestamp)
    partial_path = final_path.with_name(final_path.name + PARTIAL_SUFFIX)

    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        count = 0
        with zipfile.ZipFile(partial_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(deploy_path.rglob("*")):
                arcname = path.relative_to(deploy_path).as_posix()
                if path.is_dir():
                    zf.write(path, arcname + "/")
                else:
                    zf.write(path, arcname)
                    count += 1
        os.replace(partial_path, final_path)
    except OSError as exc:
        raise DeploymentError(
            operation="backup",
            message=f"Failed to archive {deploy_path} to {final_path}: {exc}",
            remediation="Check free space and permissions on the backup directory.",
        ) from exc
    finally:
        if partial_path.exists():
            partial_path.unlink()

    logger.info(f"Backed up {count} files from {deploy_path} to {final_path}")
    return BackupArchive(timestamp=timestamp, prefix=prefix, path=final_path)


def list_backups(backup_dir: Path, prefix: str) -> list[BackupArchive]:
    """Return the archives for a prefix, newest first."""
    if not backup_dir.is_dir():
        return []
    archives = []
    for path in backup_dir.iterdir():
        if not path.is_file():
            continue
        archive = BackupArchive.parse(path, prefix)
        if archive is not None:
            archives.append(archive)
    return sorted(archives, reverse=True)


def prune_backups(backup_dir: Path, prefix: str, keep: int) -> list[BackupArchive]:
    """Delete all but the newest ``keep`` archives for a prefix.

    Archives of other prefixes are never touched.

    Returns:
        The archives that were deleted

    Raises:
        ValueError: If keep is less than 1
        DeploymentError: If an archive cannot be deleted
    """
    if keep < 1:
        raise ValueError("keep must be at least 1")

    removed = list_backups(backup_dir, prefix)[keep:]
    for archive in removed:
        try:
            archive.path.unlink()
        except OSError as exc:
            raise DeploymentError(
                operation="prune_backups",
                message=f"Failed to delete {archive.path}: {exc}",
            ) from exc
        logger.info(f"Pruned backup {archive.path.name}")
    return removed
