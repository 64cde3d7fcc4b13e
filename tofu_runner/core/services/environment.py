"""
Execution environment — hand the parent environment and output streams
to the engine.

The environment pass is best effort: entries that do not split into
exactly ``KEY`` and ``VALUE`` on ``=`` are skipped without complaint,
which also drops values that themselves contain ``=``.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Mapping

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.core.errors import EngineCommandError, EnvironmentSetupFailed
from tofu_runner.core.observability.logging_config import component_logger


def environ_entries(environ: Mapping[str, str] | None = None) -> list[str]:
    """Render an environment mapping as ``KEY=VALUE`` entries."""
    env = os.environ if environ is None else environ
    return [f"{key}={value}" for key, value in env.items()]


def engine_environment(entries: Iterable[str]) -> dict[str, str]:
    """Build the engine's environment map from ``KEY=VALUE`` entries."""
    envs: dict[str, str] = {}
    for entry in entries:
        chunks = entry.split("=")
        if len(chunks) != 2:
            continue
        envs[chunks[0]] = chunks[1]
    return envs


def setup_environment(
    engine: Engine,
    stdout: BinaryWriter,
    stderr: BinaryWriter,
    *,
    environ: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> dict[str, str]:
    """Forward the environment to ``engine`` and bind its output streams.

    Variables the engine manages itself are left out so that, e.g., a
    ``TF_LOG`` exported in the caller's shell does not abort the run.

    Returns:
        The environment map that was bound.

    Raises:
        EnvironmentSetupFailed: The engine refused a binding call.
    """
    log = component_logger(__name__, logger)
    envs = engine_environment(environ_entries(environ))

    managed = sorted(k for k in envs if engine.is_managed_env(k))
    for key in managed:
        del envs[key]
    if managed:
        log.debug("Not forwarding engine-managed variables: %s", ", ".join(managed))

    try:
        engine.set_env(envs)
        engine.set_stdout(stdout)
        engine.set_stderr(stderr)
    except EngineCommandError as e:
        raise EnvironmentSetupFailed(f"Failed to set up engine environment: {e}") from e

    log.debug("Forwarded %d environment variables to %s", len(envs), engine.name)
    return envs
