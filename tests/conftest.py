"""
Shared test fixtures and configuration.
"""

import io
import logging
import tarfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from tofu_runner.adapters.mock import MockEngine
from tofu_runner.core.config.loader import RunConfig


def make_archive(members: dict[str, tuple[bytes, int]]) -> bytes:
    """Build a .tar.gz in memory from ``{name: (content, mode)}``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, (content, mode) in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = mode
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def http_response(status: int = 201) -> MagicMock:
    """A urlopen() return value usable as a context manager."""
    resp = MagicMock()
    resp.status = status
    resp.__enter__.return_value = resp
    return resp


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def quiet_logger() -> logging.Logger:
    """Logger injected into components under test."""
    log = logging.getLogger("tofu_runner.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """An engine working directory."""
    wd = tmp_path / "infra"
    wd.mkdir()
    return wd


@pytest.fixture
def mock_engine(workdir: Path) -> MockEngine:
    return MockEngine(workdir)


@pytest.fixture
def run_config(workdir: Path) -> RunConfig:
    """A mock-mode config with all three artifact URLs and a log URL."""
    return RunConfig(
        directory=str(workdir),
        version="1.8.2",
        mock=True,
        log_upload_url="http://uploads.test/run-1.log",
        hosted_plan_upload_url="http://uploads.test/plan",
        hosted_json_plan_upload_url="http://uploads.test/hosted-json",
        redacted_json_upload_url="http://uploads.test/redacted-json",
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the caller's runner settings out of the tests."""
    for name in (
        "TFE_TOKEN",
        "TOFU_RUNNER_DEFAULT_VERSION",
        "TOFU_RUNNER_CACHE_DIR",
        "TOFU_RUNNER_INSTALL_STRATEGY",
        "TOFU_RUNNER_LOG_LEVEL",
        "TOFU_RUNNER_LOG_FILE",
        "TOFU_RUNNER_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def archive():
    """Factory fixture for in-memory release archives."""
    return make_archive


@pytest.fixture
def response():
    """Factory fixture for fake HTTP responses."""
    return http_response
