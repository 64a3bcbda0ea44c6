"""Download, verify and unpack the runner release archive."""

from __future__ import annotations

import hashlib
import logging
import shutil
import zipfile
from enum import Enum
from pathlib import Path, PurePosixPath

import requests
from requests.exceptions import RequestException

from iisdeploy.config.defaults import (
    DEFAULT_TIMEOUTS,
    RUNNER_PLATFORM,
    RUNNER_RELEASE_URL,
)
from iisdeploy.lib.errors import DownloadError, ExtractionError, HashMismatchError

logger = logging.getLogger(__name__)

ENTRY_POINT = "config.cmd"
REQUIRED_COMPANIONS: tuple[str, ...] = ("run.cmd", "bin/Runner.Listener.exe")
# Runtime state that survives a repair of an incomplete extraction
PRESERVED_ENTRIES: frozenset[str] = frozenset(
    {".runner", ".credentials", ".credentials_rsaparams", ".env", ".path", "_work", "_diag"}
)
CHUNK_SIZE = 1024 * 1024


class ExtractResult(str, Enum):
    """Outcome of an extraction request."""

    EXTRACTED = "extracted"
    ALREADY_EXTRACTED = "already-extracted"
    REPAIRED = "repaired"


def runner_archive_name(version: str) -> str:
    """Return the release asset name for a runner version."""
    return f"actions-runner-{RUNNER_PLATFORM}-{version}.zip"


def runner_download_url(version: str) -> str:
    """Return the official download URL for a runner version."""
    return RUNNER_RELEASE_URL.format(
        version=version, archive=runner_archive_name(version)
    )


def compute_file_sha256(path: Path) -> str:
    """Compute SHA256 hash for one file."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactInstaller:
    """Fetch a versioned binary archive and lay it out on disk.

    A download that fails part-way or does not match its checksum is always
    deleted, so the next run starts from scratch instead of reusing it.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUTS["download"],
    ) -> None:
        self._session = session or requests.Session()
        self.timeout = timeout

    def download(self, url: str, dest: Path) -> Path:
        """Download ``url`` to ``dest`` unless the file already exists.

        Raises:
            DownloadError: On any HTTP or network failure
        """
        if dest.exists():
            logger.info(f"Archive already present, skipping download: {dest}")
            return dest

        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".partial")
        logger.info(f"Downloading {url}")
        try:
            with self._session.get(url, stream=True, timeout=self.timeout) as response:
                if not response.ok:
                    raise DownloadError(url, f"HTTP {response.status_code}")
                with partial.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
            partial.replace(dest)
        except RequestException as exc:
            raise DownloadError(url, str(exc)) from exc
        except OSError as exc:
            raise DownloadError(url, f"could not write {dest}: {exc}") from exc
        finally:
            partial.unlink(missing_ok=True)

        logger.info(f"Downloaded {dest.name} ({dest.stat().st_size} bytes)")
        return dest

    def verify_checksum(self, path: Path, expected_hash: str | None) -> None:
        """Verify the SHA-256 digest of ``path``.

        On mismatch the file is deleted before the error is raised.

        Raises:
            HashMismatchError: If the digest differs from ``expected_hash``
        """
        if not expected_hash:
            logger.warning(
                f"No checksum supplied for {path.name}; skipping verification"
            )
            return

        actual = compute_file_sha256(path)
        if actual.lower() != expected_hash.strip().lower():
            path.unlink(missing_ok=True)
            raise HashMismatchError(path, expected_hash.lower(), actual)
        logger.info(f"Checksum verified for {path.name}")

    def extract(self, archive: Path, dest_dir: Path) -> ExtractResult:
        """Unpack the archive into ``dest_dir``.

        A complete previous extraction is left alone. An incomplete one (entry
        point present, a companion missing) is purged, keeping runtime state,
        credentials and work directories, and extracted again.

        Raises:
            ExtractionError: If the archive is unreadable or unsafe
        """
        repaired = False
        if (dest_dir / ENTRY_POINT).exists():
            missing = [name for name in REQUIRED_COMPANIONS if not (dest_dir / name).exists()]
            if not missing:
                logger.info(f"Runner already extracted in {dest_dir}")
                return ExtractResult.ALREADY_EXTRACTED
            logger.warning(
                f"Incomplete extraction in {dest_dir} (missing {', '.join(missing)}); "
                "purging and extracting again"
            )
            self._purge(dest_dir)
            repaired = True

        dest_dir.mkdir(parents=True, exist_ok=True)
        self._secure_extract(archive, dest_dir)
        logger.info(f"Extracted {archive.name} into {dest_dir}")
        return ExtractResult.REPAIRED if repaired else ExtractResult.EXTRACTED

    @staticmethod
    def _purge(dest_dir: Path) -> None:
        for entry in dest_dir.iterdir():
            if entry.name in PRESERVED_ENTRIES:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    @staticmethod
    def _secure_extract(archive: Path, destination: Path) -> None:
        """Extract ZIP safely and prevent path traversal escapes."""
        destination_root = destination.resolve()
        try:
            with zipfile.ZipFile(archive, "r") as bundle:
                for entry in bundle.infolist():
                    name = entry.filename.replace("\\", "/")
                    if not name:
                        continue
                    pure = PurePosixPath(name)
                    if pure.is_absolute() or any(part == ".." for part in pure.parts):
                        raise ExtractionError(archive, f"unsafe entry path '{name}'")
                    target = (destination / pure.as_posix()).resolve()
                    if destination_root not in (target, *target.parents):
                        raise ExtractionError(archive, f"entry '{name}' escapes target")
                    if entry.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with bundle.open(entry, "r") as source, target.open("wb") as handle:
                        shutil.copyfileobj(source, handle)
        except zipfile.BadZipFile as exc:
            raise ExtractionError(archive, f"not a valid zip file ({exc})") from exc
        except OSError as exc:
            raise ExtractionError(archive, str(exc)) from exc
