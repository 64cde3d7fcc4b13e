"""
Configuration loader — builds the immutable ``RunConfig`` for one run.

Values are layered, lowest precedence first:

    defaults  >  tofu-runner.yml  >  TOFU_RUNNER_* / TFE_TOKEN env  >  CLI flags

The result is validated with Pydantic and frozen.  Components receive
the config (or the pieces they need) explicitly; nothing reads flags
from module state.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from tofu_runner.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Default config filename
RUNNER_CONFIG_FILE = "tofu-runner.yml"

DEFAULT_TOFU_VERSION = "1.8.2"

DEFAULT_DOWNLOAD_URL_TEMPLATE = (
    "https://github.com/opentofu/opentofu/releases/download/"
    "v{version}/{tool}_{version}_{os}_{arch}.tar.gz"
)

_DEFAULT_CACHE_DIR = Path.home() / ".cache" / "tofu-runner" / "engines"

# env var → config field
_ENV_FIELDS = {
    "TOFU_RUNNER_DEFAULT_VERSION": "default_version",
    "TOFU_RUNNER_CACHE_DIR": "cache_dir",
    "TOFU_RUNNER_INSTALL_STRATEGY": "install_strategy",
    "TFE_TOKEN": "token",
}


class RunConfig(BaseModel):
    """Everything one runner invocation needs to know."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Engine
    directory: str = ""
    version: str = "latest"
    default_version: str = DEFAULT_TOFU_VERSION
    install_strategy: Literal["download", "installer"] = "download"
    install_dir: str = ""
    cache_dir: str = str(_DEFAULT_CACHE_DIR)
    download_url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE
    mock: bool = False
    debug: bool = False

    # Plan shaping
    plan_only: bool = False
    targets: str = ""
    destroy: bool = False

    # Upload destinations
    log_upload_url: str = ""
    hosted_plan_upload_url: str = ""
    hosted_json_plan_upload_url: str = ""
    hosted_structured_json_upload_url: str = ""
    redacted_json_upload_url: str = ""

    # Per-run log naming and control-plane bootstrap
    log_address: str = ""
    run_id: str = ""
    api_address: str = ""
    token: str = ""

    http_timeout: float = 300.0

    @property
    def working_directory(self) -> Path:
        """Resolved engine working directory (cwd when unset)."""
        return Path(self.directory or ".").resolve()

    @property
    def resolved_log_upload_url(self) -> str:
        """Log destination: explicit URL, else ``{log_address}/{run_id}.log``."""
        if self.log_upload_url:
            return self.log_upload_url
        if self.log_address and self.run_id:
            return f"{self.log_address.rstrip('/')}/{self.run_id}.log"
        return ""

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        if data.get("token"):
            data["token"] = "***"
        return data


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for tofu-runner.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to tofu-runner.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / RUNNER_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read and shape-check a YAML config file.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading runner config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Accept both a flat file and one nested under a "runner" key
    section = data.get("runner", data)
    if not isinstance(section, dict):
        raise ConfigError(f"Expected 'runner' to be a mapping in {path}")
    # YAML keys may use the CLI spelling (log-upload-url)
    return {str(k).replace("-", "_"): v for k, v in section.items()}


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect config values from TOFU_RUNNER_* variables and TFE_TOKEN."""
    env = os.environ if environ is None else environ
    return {field: env[name] for name, field in _ENV_FIELDS.items() if env.get(name)}


def load_config(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    search: bool = True,
) -> RunConfig:
    """Build the run configuration from every source.

    Args:
        path: Explicit YAML file. If None and ``search`` is set, look upward
            from the cwd for tofu-runner.yml; a missing file is not an error.
        overrides: Values from the CLI. ``None`` values are ignored so unset
            flags do not mask file or env values.
        environ: Environment mapping (default: ``os.environ``).
        search: Whether to auto-discover a config file.

    Raises:
        ConfigError: If any source is invalid.
    """
    data: dict[str, Any] = {}

    if path is None and search:
        path = find_config_file()
    if path is not None:
        data.update(read_config_file(path))

    data.update(env_overrides(environ))

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = RunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid runner configuration: {e}") from e

    logger.debug("Runner config: %s", config.to_dict())
    return config
