"""
Direct-download provisioning — fetch a release archive and extract the engine.

The archive is streamed straight from the release URL through gzip and
tar; only the member named exactly like the tool is written to disk,
with its original mode bits so it stays executable.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import tarfile
import urllib.error
import urllib.request
import zlib
from pathlib import Path
from typing import IO, Callable

from tofu_runner.core.config.loader import DEFAULT_DOWNLOAD_URL_TEMPLATE
from tofu_runner.core.errors import BinaryNotFound, DownloadFailed, InstallFailed
from tofu_runner.core.models.engine import VersionSpec
from tofu_runner.core.observability.logging_config import component_logger

TOOL_NAME = "tofu"

_USER_AGENT = "tofu-runner/1.0"

# platform.machine() → release archive arch name
_ARCH_MAP: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "AMD64": "amd64",      # Windows / WSL2
    "aarch64": "arm64",
    "arm64": "arm64",      # macOS
    "i386": "386",
    "i686": "386",
    # 32-bit ARM hosts get the arm64 archive; kept as upstream publishes it
    "arm": "arm64",
    "armv6l": "arm64",
    "armv7l": "arm64",
}

_ARM32 = frozenset({"arm", "armv6l", "armv7l"})

_FALLBACK_ARCH = "amd64"

Opener = Callable[[str, float], IO[bytes]]


def engine_arch(machine: str | None = None, logger: logging.Logger | None = None) -> str:
    """Map the host architecture to the release archive's naming."""
    log = component_logger(__name__, logger)
    machine = machine if machine is not None else platform.machine()
    if machine in _ARM32:
        log.warning(
            "32-bit ARM host (%s) is mapped to the arm64 release archive", machine,
        )
    arch = _ARCH_MAP.get(machine) or _ARCH_MAP.get(machine.lower())
    if arch is None:
        log.warning("Unknown architecture %r, falling back to %s", machine, _FALLBACK_ARCH)
        return _FALLBACK_ARCH
    return arch


def engine_os(system: str | None = None) -> str:
    """Release archive OS name (``linux``, ``darwin``, ``windows``...)."""
    return (system if system is not None else platform.system()).lower()


def release_url(
    version: str,
    *,
    tool: str = TOOL_NAME,
    os_name: str | None = None,
    arch: str | None = None,
    template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE,
) -> str:
    """Build the release archive URL for one version/OS/arch."""
    return template.format(
        version=version,
        tool=tool,
        os=os_name if os_name is not None else engine_os(),
        arch=arch if arch is not None else engine_arch(),
    )


def urlopen(url: str, timeout: float) -> IO[bytes]:
    """Open a URL for streaming; non-2xx responses raise ``HTTPError``."""
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    return urllib.request.urlopen(req, timeout=timeout)


def extract_binary(
    stream: IO[bytes],
    dest_dir: Path,
    *,
    tool: str = TOOL_NAME,
) -> Path:
    """Extract the member named ``tool`` from a gzip'd tar stream.

    Args:
        stream: Readable binary stream of a ``.tar.gz`` archive.
        dest_dir: Directory to write the binary into.
        tool: Exact member name to look for.

    Returns:
        Absolute path of the written binary.

    Raises:
        DownloadFailed: The stream is not a readable gzip'd tar.
        BinaryNotFound: No member is named ``tool``; nothing is written.
        InstallFailed: The binary could not be written or chmod'ed.
    """
    try:
        tar = tarfile.open(fileobj=stream, mode="r|gz")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
        raise DownloadFailed(f"Cannot read release archive: {e}") from e

    with tar:
        try:
            for member in tar:
                if member.name != tool:
                    continue
                source = tar.extractfile(member)
                if source is None:
                    raise InstallFailed(f"Archive entry {tool!r} is not a regular file")
                return _write_executable(source, Path(dest_dir) / tool, member.mode)
        except (tarfile.TarError, EOFError, zlib.error) as e:
            raise DownloadFailed(f"Corrupt release archive: {e}") from e

    raise BinaryNotFound(f"Failed to find {tool} binary in archive")


def _write_executable(source: IO[bytes], dest: Path, mode: int) -> Path:
    """Copy ``source`` to ``dest`` and apply the archive's mode bits."""
    partial = dest.with_name(dest.name + ".partial")
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(partial, "wb") as out:
            shutil.copyfileobj(source, out)
        os.chmod(partial, mode & 0o7777)
        os.replace(partial, dest)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise InstallFailed(f"Cannot write {dest}: {e}") from e
    except BaseException:
        # truncated or corrupt archive member
        partial.unlink(missing_ok=True)
        raise
    return dest.resolve()


class ReleaseDownloader:
    """Install an engine by downloading its release archive.

    Args:
        install_dir: Where the binary is written (default: cwd).
        url_template: Release URL template, see ``release_url``.
        opener: ``(url, timeout) -> stream``; defaults to urllib.
        timeout: Socket timeout for the download.
        logger: Optional injected logger.
    """

    def __init__(
        self,
        install_dir: Path | str | None = None,
        *,
        url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE,
        tool: str = TOOL_NAME,
        opener: Opener | None = None,
        timeout: float = 300.0,
        machine: str | None = None,
        system: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._install_dir = Path(install_dir) if install_dir else None
        self._url_template = url_template
        self._tool = tool
        self._opener = opener or urlopen
        self._timeout = timeout
        self._machine = machine
        self._system = system
        self._log = component_logger(__name__, logger)

    @property
    def tool(self) -> str:
        return self._tool

    def url_for(self, version: str) -> str:
        return release_url(
            version,
            tool=self._tool,
            os_name=engine_os(self._system),
            arch=engine_arch(self._machine, self._log),
            template=self._url_template,
        )

    def open(self, url: str) -> IO[bytes]:
        """Open ``url`` for streaming, mapping transport errors to ``DownloadFailed``."""
        try:
            return self._opener(url, self._timeout)
        except urllib.error.HTTPError as e:
            raise DownloadFailed(f"GET {url} returned HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise DownloadFailed(f"GET {url} failed: {e}") from e

    def install(self, spec: VersionSpec, dest_dir: Path | None = None) -> Path:
        """Download and extract the engine for an exact version.

        Returns:
            Absolute path to the executable.
        """
        if spec.is_latest:
            raise DownloadFailed("Direct download needs an exact version, got 'latest'")

        target_dir = dest_dir or self._install_dir or Path.cwd()
        url = self.url_for(spec.version)
        self._log.info("Downloading %s %s from %s", self._tool, spec.version, url)

        stream = self.open(url)
        try:
            path = extract_binary(stream, target_dir, tool=self._tool)
        finally:
            stream.close()

        self._log.info("Installed %s %s at %s", self._tool, spec.version, path)
        return path
