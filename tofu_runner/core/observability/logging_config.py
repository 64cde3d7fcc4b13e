"""
Logging configuration — set up once by the CLI, injected everywhere else.

Pipeline components take an optional ``logger`` argument and fall back to
their module logger via ``component_logger()``.  Tests pass their own
logger and never touch the root configuration.

Level precedence:
    --debug / --verbose / --quiet  >  TOFU_RUNNER_LOG_LEVEL  >  INFO

Optional file output via TOFU_RUNNER_LOG_FILE / TOFU_RUNNER_LOG_FILE_LEVEL.
The engine's own output never goes through logging; it is written to the
console and the log capture directly.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

# INFO and above: runs in CI, keep full timestamps
_FMT_CONSOLE = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
_DATEFMT_CONSOLE = "%Y-%m-%dT%H:%M:%S"

# DEBUG: add file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"

# ERROR-only (--quiet): just the message
_FMT_QUIET = "%(levelname)s: %(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("asyncio", "concurrent.futures")

DEFAULT_LEVEL = "INFO"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get("TOFU_RUNNER_LOG_LEVEL", DEFAULT_LEVEL)


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the process.

    Args:
        level: Console level name.
        log_file: Optional path to a log file.
        log_file_level: Separate level for the file (default: ``level``).
        quiet_third_party: Hold noisy library loggers at WARNING unless
            running at DEBUG.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_CONSOLE
    elif numeric_level < logging.ERROR:
        fmt, datefmt = _FMT_CONSOLE, _DATEFMT_CONSOLE
    else:
        fmt, datefmt = _FMT_QUIET, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def component_logger(name: str, injected: logging.Logger | None = None) -> logging.Logger:
    """Return the injected logger, or the named module logger."""
    return injected if injected is not None else logging.getLogger(name)


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
