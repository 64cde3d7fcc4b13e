"""
Domain models — Pydantic types and result records for a runner pass.

    from tofu_runner.core.models import VersionSpec, PlanOptions, UploadResult
"""

from tofu_runner.core.models.artifacts import (
    ArtifactBundle,
    FanOutReport,
    HostedJsonPlan,
    UploadResult,
)
from tofu_runner.core.models.engine import (
    InstalledEngine,
    PlanOptions,
    PlanResult,
    VersionSpec,
)

__all__ = [
    # artifacts.py
    "ArtifactBundle",
    "FanOutReport",
    "HostedJsonPlan",
    "UploadResult",
    # engine.py
    "InstalledEngine",
    "PlanOptions",
    "PlanResult",
    "VersionSpec",
]
