"""
Binary provisioning — make an engine executable available locally.

Two strategies, chosen by ``RunConfig.install_strategy``:

    download   → ReleaseDownloader: fetch the archive, extract into
                 ``install_dir`` (cwd by default).  No caching.
    installer  → CachingInstaller: exact version first, then latest,
                 cached and checksum-verified under ``cache_dir``.
"""

from __future__ import annotations

import logging

from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.models.engine import InstalledEngine, VersionSpec
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.provision.download import (
    TOOL_NAME,
    Opener,
    ReleaseDownloader,
    engine_arch,
    engine_os,
    extract_binary,
    release_url,
)
from tofu_runner.core.services.provision.installer import CachingInstaller
from tofu_runner.core.services.version import installer_sources

__all__ = [
    "CachingInstaller",
    "ReleaseDownloader",
    "TOOL_NAME",
    "engine_arch",
    "engine_os",
    "extract_binary",
    "provision_engine",
    "release_url",
]


def provision_engine(
    config: RunConfig,
    spec: VersionSpec,
    *,
    opener: Opener | None = None,
    logger: logging.Logger | None = None,
) -> InstalledEngine:
    """Install the engine for ``spec`` and bind it to the working directory.

    Raises:
        DownloadFailed, BinaryNotFound, InstallFailed: Provisioning failed.
    """
    log = component_logger(__name__, logger)
    downloader = ReleaseDownloader(
        config.install_dir or None,
        url_template=config.download_url_template,
        opener=opener,
        timeout=config.http_timeout,
        logger=logger,
    )

    if config.install_strategy == "installer":
        installer = CachingInstaller(config.cache_dir, downloader, logger=logger)
        path, version = installer.install(installer_sources(spec))
    else:
        path, version = downloader.install(spec), spec.version

    log.info("Engine %s ready at %s", version, path)
    return InstalledEngine(
        executable_path=str(path),
        working_directory=str(config.working_directory),
        version=version,
    )

