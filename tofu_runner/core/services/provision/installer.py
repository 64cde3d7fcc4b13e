"""
Caching installer — resolve, verify and cache engine binaries.

Takes an ordered list of acceptable sources (usually the exact version,
then ``latest``) and returns the first one it can make ready.  Binaries
are kept under ``<cache_dir>/<version>/<tool>`` and reused across runs.
Archives are checked against the release's SHA256SUMS file when it can
be fetched.
"""

from __future__ import annotations

import hashlib
import http.client
import json
import logging
import os
import shutil
from pathlib import Path

from tofu_runner.core.errors import (
    BinaryNotFound,
    DownloadFailed,
    InstallFailed,
    InvalidVersion,
    RunnerError,
)
from tofu_runner.core.models.engine import VersionSpec
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.provision.download import ReleaseDownloader, extract_binary
from tofu_runner.core.services.version import parse_semver

LATEST_RELEASE_API = "https://api.github.com/repos/opentofu/opentofu/releases/latest"


def sha256_file(path: Path) -> str:
    """Hex sha256 digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def parse_checksums(text: str) -> dict[str, str]:
    """Parse a ``SHA256SUMS`` body into ``{filename: digest}``."""
    sums: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        digest, name = parts
        sums[name.lstrip("*")] = digest.lower()
    return sums


class CachingInstaller:
    """Install an engine from the first source that works.

    Args:
        cache_dir: Root of the binary cache.
        downloader: Used for URLs, HTTP and archive extraction.
        release_api: GitHub API URL answering "what is latest".
        verify: Check archives against SHA256SUMS when available.
        logger: Optional injected logger.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        downloader: ReleaseDownloader,
        *,
        release_api: str = LATEST_RELEASE_API,
        verify: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._downloader = downloader
        self._release_api = release_api
        self._verify = verify
        self._log = component_logger(__name__, logger)

    def install(self, sources: list[VersionSpec]) -> tuple[Path, str]:
        """Return ``(executable_path, version)`` for the first usable source.

        Raises:
            InstallFailed: Every source failed; the message lists why.
        """
        if not sources:
            raise InstallFailed("No install sources given")

        errors: list[str] = []
        for source in sources:
            try:
                version = self.resolve(source)
                return self._ensure(version), version
            except RunnerError as e:
                self._log.warning("Install source %s failed: %s", source, e)
                errors.append(f"{source}: {e}")

        raise InstallFailed("All install sources failed: " + "; ".join(errors))

    def resolve(self, source: VersionSpec) -> str:
        """Concrete version for a source; ``latest`` asks the release API."""
        if not source.is_latest:
            return source.version

        stream = self._downloader.open(self._release_api)
        try:
            data = json.loads(stream.read())
        except ValueError as e:
            raise DownloadFailed(f"Invalid release metadata: {e}") from e
        finally:
            stream.close()

        tag = data.get("tag_name", "") if isinstance(data, dict) else ""
        try:
            version = parse_semver(tag)
        except InvalidVersion as e:
            raise DownloadFailed(f"Latest release has no usable tag: {tag!r}") from e
        self._log.info("Latest %s release is %s", self._downloader.tool, version)
        return version

    def cached_path(self, version: str) -> Path:
        return self._cache_dir / version / self._downloader.tool

    def _ensure(self, version: str) -> Path:
        binary = self.cached_path(version)
        if binary.is_file() and os.access(binary, os.X_OK):
            self._log.info("Using cached %s %s at %s", self._downloader.tool, version, binary)
            return binary.resolve()

        url = self._downloader.url_for(version)
        version_dir = binary.parent
        archive = version_dir / url.rsplit("/", 1)[-1]
        try:
            version_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallFailed(f"Cannot create cache dir {version_dir}: {e}") from e

        self._log.info("Downloading %s %s into cache", self._downloader.tool, version)
        self._fetch(url, archive)
        try:
            if self._verify:
                self._check(url, archive, version)
            with open(archive, "rb") as f:
                return extract_binary(f, version_dir, tool=self._downloader.tool)
        except (BinaryNotFound, DownloadFailed, InstallFailed):
            raise
        except OSError as e:
            raise InstallFailed(f"Cannot read cached archive {archive}: {e}") from e
        finally:
            archive.unlink(missing_ok=True)

    def _fetch(self, url: str, dest: Path) -> None:
        stream = self._downloader.open(url)
        try:
            with open(dest, "wb") as out:
                shutil.copyfileobj(stream, out)
        except (OSError, http.client.HTTPException) as e:
            dest.unlink(missing_ok=True)
            raise DownloadFailed(f"Download of {url} failed: {e}") from e
        finally:
            stream.close()

    def _check(self, url: str, archive: Path, version: str) -> None:
        sums_url = f"{url.rsplit('/', 1)[0]}/{self._downloader.tool}_{version}_SHA256SUMS"
        try:
            stream = self._downloader.open(sums_url)
        except DownloadFailed as e:
            self._log.warning("Skipping checksum verification: %s", e)
            return
        try:
            sums = parse_checksums(stream.read().decode("utf-8", errors="replace"))
        finally:
            stream.close()

        expected = sums.get(archive.name)
        if expected is None:
            self._log.warning("No checksum listed for %s", archive.name)
            return

        actual = sha256_file(archive)
        if actual != expected:
            raise InstallFailed(
                f"Checksum mismatch for {archive.name}: expected {expected}, got {actual}"
            )
        self._log.debug("Checksum verified for %s", archive.name)
