"""
Tests for engine provisioning — archive extraction, direct download and
the caching installer.
"""

import hashlib
import io
import json
import logging
import os
import stat
import urllib.error
from pathlib import Path

import pytest

from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.errors import BinaryNotFound, DownloadFailed, InstallFailed
from tofu_runner.core.models.engine import VersionSpec
from tofu_runner.core.services.provision import (
    CachingInstaller,
    ReleaseDownloader,
    engine_arch,
    engine_os,
    extract_binary,
    provision_engine,
    release_url,
)

BINARY = b"#!/bin/sh\necho tofu\n"


def _release(archive) -> bytes:
    return archive({
        "LICENSE": (b"MPL-2.0", 0o644),
        "README.md": (b"# OpenTofu", 0o644),
        "tofu": (BINARY, 0o755),
    })


class TestArch:
    @pytest.mark.parametrize("machine, expected", [
        ("x86_64", "amd64"),
        ("AMD64", "amd64"),
        ("aarch64", "arm64"),
        ("arm64", "arm64"),
        ("i686", "386"),
    ])
    def test_known(self, machine, expected):
        assert engine_arch(machine) == expected

    def test_arm32_maps_to_arm64_with_warning(self, caplog, quiet_logger):
        caplog.set_level(logging.WARNING)
        assert engine_arch("armv7l", quiet_logger) == "arm64"
        assert "32-bit ARM" in caplog.text

    def test_unknown_falls_back(self, caplog, quiet_logger):
        caplog.set_level(logging.WARNING)
        assert engine_arch("sparc64", quiet_logger) == "amd64"
        assert "Unknown architecture" in caplog.text

    def test_os_is_lowercased(self):
        assert engine_os("Darwin") == "darwin"

    def test_release_url(self):
        assert release_url("1.8.2", os_name="linux", arch="amd64") == (
            "https://github.com/opentofu/opentofu/releases/download/"
            "v1.8.2/tofu_1.8.2_linux_amd64.tar.gz"
        )


class TestExtractBinary:
    def test_extracts_tool_with_mode(self, tmp_path: Path, archive):
        path = extract_binary(io.BytesIO(_release(archive)), tmp_path)
        assert path == (tmp_path / "tofu").resolve()
        assert path.read_bytes() == BINARY
        assert stat.S_IMODE(path.stat().st_mode) == 0o755
        assert not (tmp_path / "LICENSE").exists()

    def test_only_exact_name_matches(self, tmp_path: Path, archive):
        data = archive({"bin/tofu": (BINARY, 0o755), "tofu.sig": (b"sig", 0o644)})
        with pytest.raises(BinaryNotFound):
            extract_binary(io.BytesIO(data), tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_truncated_binary_leaves_nothing(self, tmp_path: Path, archive):
        data = archive({"tofu": (os.urandom(200_000), 0o755)})
        with pytest.raises(DownloadFailed):
            extract_binary(io.BytesIO(data[: len(data) // 2]), tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_not_an_archive(self, tmp_path: Path):
        with pytest.raises(DownloadFailed):
            extract_binary(io.BytesIO(b"<html>rate limited</html>"), tmp_path)


class TestReleaseDownloader:
    def _downloader(self, tmp_path, opener, quiet_logger):
        return ReleaseDownloader(
            tmp_path, opener=opener, machine="x86_64", system="Linux", logger=quiet_logger,
        )

    def test_install(self, tmp_path: Path, archive, quiet_logger):
        requested = []

        def opener(url, timeout):
            requested.append(url)
            return io.BytesIO(_release(archive))

        path = self._downloader(tmp_path, opener, quiet_logger).install(VersionSpec.exact("1.8.2"))
        assert path == (tmp_path / "tofu").resolve()
        assert requested == [
            "https://github.com/opentofu/opentofu/releases/download/"
            "v1.8.2/tofu_1.8.2_linux_amd64.tar.gz"
        ]

    def test_http_error(self, tmp_path: Path, quiet_logger):
        def opener(url, timeout):
            raise urllib.error.HTTPError(url, 404, "Not Found", None, None)

        with pytest.raises(DownloadFailed, match="404"):
            self._downloader(tmp_path, opener, quiet_logger).install(VersionSpec.exact("9.9.9"))

    def test_network_error(self, tmp_path: Path, quiet_logger):
        def opener(url, timeout):
            raise urllib.error.URLError("offline")

        with pytest.raises(DownloadFailed, match="offline"):
            self._downloader(tmp_path, opener, quiet_logger).install(VersionSpec.exact("1.8.2"))

    def test_latest_is_rejected(self, tmp_path: Path, quiet_logger):
        with pytest.raises(DownloadFailed):
            self._downloader(tmp_path, lambda u, t: None, quiet_logger).install(VersionSpec.latest())


class FakeReleases:
    """Serves archives, SHA256SUMS and the latest-release API from memory."""

    def __init__(self, archives: dict[str, bytes], latest: str = "1.9.0", bad_sums: bool = False):
        self.archives = archives
        self.latest = latest
        self.bad_sums = bad_sums
        self.requests: list[str] = []

    def __call__(self, url: str, timeout: float):
        self.requests.append(url)
        if url.endswith("/releases/latest"):
            return io.BytesIO(json.dumps({"tag_name": f"v{self.latest}"}).encode())
        for version, data in self.archives.items():
            name = f"tofu_{version}_linux_amd64.tar.gz"
            if url.endswith(f"/{name}"):
                return io.BytesIO(data)
            if url.endswith(f"/tofu_{version}_SHA256SUMS"):
                digest = "0" * 64 if self.bad_sums else hashlib.sha256(data).hexdigest()
                return io.BytesIO(f"{digest}  {name}\n".encode())
        raise urllib.error.HTTPError(url, 404, "Not Found", None, None)


class TestCachingInstaller:
    def _installer(self, tmp_path, releases, quiet_logger):
        downloader = ReleaseDownloader(
            opener=releases, machine="x86_64", system="Linux", logger=quiet_logger,
        )
        return CachingInstaller(tmp_path / "cache", downloader, logger=quiet_logger)

    def test_installs_exact_and_caches(self, tmp_path: Path, archive, quiet_logger):
        releases = FakeReleases({"1.8.2": _release(archive)})
        installer = self._installer(tmp_path, releases, quiet_logger)
        sources = [VersionSpec.exact("1.8.2"), VersionSpec.latest()]

        path, version = installer.install(sources)
        assert version == "1.8.2"
        assert path == (tmp_path / "cache" / "1.8.2" / "tofu").resolve()
        assert path.read_bytes() == BINARY
        # the archive itself is not kept
        assert sorted(p.name for p in path.parent.iterdir()) == ["tofu"]

        first = len(releases.requests)
        assert installer.install(sources) == (path, "1.8.2")
        assert len(releases.requests) == first

    def test_falls_back_to_latest(self, tmp_path: Path, archive, quiet_logger):
        releases = FakeReleases({"1.9.0": _release(archive)}, latest="1.9.0")
        installer = self._installer(tmp_path, releases, quiet_logger)

        path, version = installer.install([VersionSpec.exact("1.8.2"), VersionSpec.latest()])
        assert version == "1.9.0"
        assert path.parent.name == "1.9.0"

    def test_checksum_mismatch(self, tmp_path: Path, archive, quiet_logger):
        releases = FakeReleases({"1.8.2": _release(archive)}, bad_sums=True)
        installer = self._installer(tmp_path, releases, quiet_logger)

        with pytest.raises(InstallFailed, match="Checksum mismatch"):
            installer.install([VersionSpec.exact("1.8.2")])
        assert not installer.cached_path("1.8.2").exists()

    def test_all_sources_fail(self, tmp_path: Path, quiet_logger):
        installer = self._installer(tmp_path, FakeReleases({}), quiet_logger)
        with pytest.raises(InstallFailed, match="All install sources failed"):
            installer.install([VersionSpec.exact("1.8.2"), VersionSpec.latest()])

    def test_no_sources(self, tmp_path: Path, quiet_logger):
        with pytest.raises(InstallFailed):
            self._installer(tmp_path, FakeReleases({}), quiet_logger).install([])


class TestProvisionEngine:
    def test_download_strategy(self, tmp_path: Path, workdir: Path, archive, quiet_logger):
        config = RunConfig(directory=str(workdir), install_dir=str(tmp_path / "bin"))
        installed = provision_engine(
            config, VersionSpec.exact("1.8.2"),
            opener=lambda url, timeout: io.BytesIO(_release(archive)),
            logger=quiet_logger,
        )
        assert installed.version == "1.8.2"
        assert installed.working_directory == str(workdir.resolve())
        assert Path(installed.executable_path) == (tmp_path / "bin" / "tofu").resolve()

    def test_installer_strategy(self, tmp_path: Path, workdir: Path, archive, quiet_logger):
        config = RunConfig(
            directory=str(workdir),
            install_strategy="installer",
            cache_dir=str(tmp_path / "cache"),
        )

        def opener(url, timeout):
            if "SHA256SUMS" in url:
                raise urllib.error.HTTPError(url, 404, "Not Found", None, None)
            return io.BytesIO(_release(archive))

        installed = provision_engine(
            config, VersionSpec.exact("1.8.2"), opener=opener, logger=quiet_logger,
        )
        assert Path(installed.executable_path) == (tmp_path / "cache" / "1.8.2" / "tofu").resolve()
