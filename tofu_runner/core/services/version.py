"""
Version resolution (pure).

Turns the user's ``--version`` value into a ``VersionSpec``.  ``latest``
deliberately resolves to a pinned default so two runs of the same
configuration install the same engine.
"""

from __future__ import annotations

import re

from tofu_runner.core.config.loader import DEFAULT_TOFU_VERSION
from tofu_runner.core.errors import InvalidVersion
from tofu_runner.core.models.engine import VersionSpec

LATEST = "latest"

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


def parse_semver(value: str) -> str:
    """Validate a semantic version and return it without a leading ``v``.

    Raises:
        InvalidVersion: If ``value`` is not ``MAJOR.MINOR.PATCH[-pre][+build]``.
    """
    match = _SEMVER_RE.match(value.strip())
    if not match:
        raise InvalidVersion(f"Not a semantic version: {value!r}")
    return value.strip().lstrip("v")


def resolve_version(raw: str | None, default: str = DEFAULT_TOFU_VERSION) -> VersionSpec:
    """Resolve a user-supplied version string to an exact ``VersionSpec``.

    Args:
        raw: ``""``, ``None``, ``"latest"`` or a semantic version.
        default: Pinned version used for ``""`` and ``"latest"``.

    Raises:
        InvalidVersion: If ``raw`` (or ``default``) is not a semantic version.
    """
    value = (raw or "").strip()
    if not value or value.lower() == LATEST:
        return VersionSpec.exact(parse_semver(default))
    return VersionSpec.exact(parse_semver(value))


def installer_sources(spec: VersionSpec) -> list[VersionSpec]:
    """Ordered candidate sources for the caching installer: exact, then latest."""
    if spec.is_latest:
        return [spec]
    return [spec, VersionSpec.latest()]
