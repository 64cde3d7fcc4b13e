"""
Engine models — versions, installed binaries, plan options and results.

These are the values that flow through one pipeline run.  All of them
are created once per invocation and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class VersionSpec(BaseModel):
    """Which engine release to install: an exact semver or ``latest``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["exact", "latest"] = "exact"
    version: str = ""

    @classmethod
    def exact(cls, version: str) -> VersionSpec:
        return cls(kind="exact", version=version)

    @classmethod
    def latest(cls) -> VersionSpec:
        return cls(kind="latest", version="")

    @property
    def is_latest(self) -> bool:
        return self.kind == "latest"

    def __str__(self) -> str:
        return "latest" if self.is_latest else self.version


class InstalledEngine(BaseModel):
    """A ready-to-run engine binary bound to one working directory."""

    model_config = ConfigDict(frozen=True)

    executable_path: str
    working_directory: str
    version: str = ""


class PlanOptions(BaseModel):
    """Options for a single ``plan`` invocation."""

    model_config = ConfigDict(frozen=True)

    out: str = "tfplan"
    lock: bool = True
    destroy: bool = False
    targets: tuple[str, ...] = Field(default_factory=tuple)

    def to_args(self) -> list[str]:
        """Render as engine command-line flags, targets in input order."""
        args = [f"-out={self.out}"]
        if not self.lock:
            args.append("-lock=false")
        if self.destroy:
            args.append("-destroy")
        for target in self.targets:
            args.append(f"-target={target}")
        return args


@dataclass(frozen=True)
class PlanResult:
    """Outcome of a plan.

    ``structured_plan`` and ``provider_schemas`` are only filled in
    (by the artifact assembler) when ``has_changes`` is true.
    """

    has_changes: bool
    plan_file_path: str
    structured_plan: dict[str, Any] | None = None
    provider_schemas: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_changes": self.has_changes,
            "plan_file_path": self.plan_file_path,
            "inspected": self.structured_plan is not None,
        }
