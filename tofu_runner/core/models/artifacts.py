"""
Artifact and upload models — what a plan produces and where it went.

The assembler produces an ``ArtifactBundle``.  The fan-out turns each
artifact into an ``UploadResult`` and collects them in a
``FanOutReport``.  Upload failures live here as values; they are never
raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from tofu_runner.core.errors import UploadFailed

# Artifact names, used in logs, results and --json output
PLAN_FILE = "plan"
HOSTED_JSON_PLAN = "hosted-json-plan"
REDACTED_JSON_PLAN = "redacted-json-plan"
STRUCTURED_JSON = "structured-json"
LOGS = "logs"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class HostedJsonPlan(BaseModel):
    """Plan changes merged with the provider schema catalog."""

    plan_format_version: str = ""
    output_changes: dict[str, Any] | None = None
    resource_changes: list[dict[str, Any]] | None = None
    resource_drift: list[dict[str, Any]] | None = None
    relevant_attributes: list[dict[str, Any]] | None = None

    provider_format_version: str = ""
    provider_schemas: dict[str, Any] | None = None


@dataclass(frozen=True)
class ArtifactBundle:
    """Serialized plan artifacts, ready to upload in any order."""

    raw_plan: bytes
    hosted_json_plan: bytes
    redacted_json_plan: bytes
    structured_json: bytes = b""


class UploadResult(BaseModel):
    """Outcome of one PUT.

    Mirrors an adapter receipt: the uploader never raises, every
    failure is captured here.
    """

    artifact: str
    url: str = ""
    status: Literal["ok", "skipped", "failed"] = "ok"
    status_code: int | None = None
    error: str | None = None
    error_kind: str | None = None
    size_bytes: int = 0

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(cls, artifact: str, url: str, **kwargs: Any) -> UploadResult:
        return cls(artifact=artifact, url=url, status="ok", **kwargs)

    @classmethod
    def failure(
        cls, artifact: str, url: str, error: str, *, kind: str = UploadFailed.kind, **kwargs: Any,
    ) -> UploadResult:
        return cls(artifact=artifact, url=url, status="failed", error=error, error_kind=kind, **kwargs)

    @classmethod
    def skip(cls, artifact: str, reason: str = "no upload URL configured") -> UploadResult:
        return cls(artifact=artifact, status="skipped", error=reason)


@dataclass
class FanOutReport:
    """Every upload result from one fan-out, in submission order."""

    results: list[UploadResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> list[UploadResult]:
        return [r for r in self.results if r.failed]

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def status(self) -> str:
        if not self.failed:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def get(self, artifact: str) -> UploadResult | None:
        for result in self.results:
            if result.artifact == artifact:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": len(self.failed),
            "skipped": self.skipped,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
