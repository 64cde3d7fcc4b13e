"""
Artifact assembly — turn a finished plan into uploadable documents.

Two JSON documents come out of one plan:

    redacted JSON plan   the engine's ``show -json`` output, as-is
                         (sensitive values already masked by the engine)
    hosted JSON plan     changes, drift and relevant attributes from the
                         plan, merged with the provider schema catalog

Both are serialized before anything is uploaded; if either fails, the
run stops and nothing is sent.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tofu_runner.adapters.base import Engine
from tofu_runner.core.errors import (
    ArtifactAssemblyFailed,
    ArtifactSerializationFailed,
    EngineCommandError,
)
from tofu_runner.core.models.artifacts import ArtifactBundle, HostedJsonPlan
from tofu_runner.core.models.engine import PlanResult
from tofu_runner.core.observability.logging_config import component_logger


def build_hosted_plan(plan: dict[str, Any], schemas: dict[str, Any]) -> HostedJsonPlan:
    """Merge plan changes with the provider schema catalog."""
    return HostedJsonPlan(
        plan_format_version=plan.get("format_version") or "",
        output_changes=plan.get("output_changes"),
        resource_changes=plan.get("resource_changes"),
        resource_drift=plan.get("resource_drift"),
        relevant_attributes=plan.get("relevant_attributes"),
        provider_format_version=schemas.get("format_version") or "",
        provider_schemas=schemas.get("provider_schemas"),
    )


def _dumps(document: Any, label: str) -> bytes:
    try:
        return json.dumps(document, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ArtifactSerializationFailed(f"Cannot serialize {label}: {e}") from e


class ArtifactAssembler:
    """Describe a saved plan through the engine and serialize the results.

    Args:
        engine: The engine that produced the plan.
        logger: Optional injected logger.
    """

    def __init__(self, engine: Engine, logger: logging.Logger | None = None) -> None:
        self._engine = engine
        self._log = component_logger(__name__, logger)

    def inspect(self, result: PlanResult) -> PlanResult:
        """Attach the redacted plan and provider schemas to a plan with changes.

        Raises:
            ArtifactAssemblyFailed: The plan had no changes, or the engine
                could not describe it.
        """
        if not result.has_changes:
            raise ArtifactAssemblyFailed("Refusing to assemble artifacts for a plan without changes")

        try:
            plan = self._engine.show_plan_file(result.plan_file_path)
            schemas = self._engine.providers_schema()
        except EngineCommandError as e:
            raise ArtifactAssemblyFailed(f"Cannot inspect plan: {e}") from e

        return dataclasses.replace(result, structured_plan=plan, provider_schemas=schemas)

    def read_plan_file(self, result: PlanResult) -> bytes:
        try:
            return Path(result.plan_file_path).read_bytes()
        except OSError as e:
            raise ArtifactAssemblyFailed(f"Cannot read plan file {result.plan_file_path}: {e}") from e

    def assemble(self, result: PlanResult, structured: bytes = b"") -> ArtifactBundle:
        """Serialize every artifact of an inspected plan.

        Args:
            result: Output of ``inspect``.
            structured: Captured JSON event stream of the plan.

        Raises:
            ArtifactAssemblyFailed: ``result`` was not inspected, or the plan
                file cannot be read.
            ArtifactSerializationFailed: Either JSON document failed to
                serialize.
        """
        if result.structured_plan is None or result.provider_schemas is None:
            raise ArtifactAssemblyFailed("Plan result has not been inspected")

        raw_plan = self.read_plan_file(result)

        redacted = _dumps(result.structured_plan, "redacted JSON plan")
        try:
            hosted_model = build_hosted_plan(result.structured_plan, result.provider_schemas)
        except ValidationError as e:
            raise ArtifactSerializationFailed(f"Cannot build hosted JSON plan: {e}") from e
        hosted = _dumps(hosted_model.model_dump(mode="json"), "hosted JSON plan")

        self._log.debug(
            "Assembled artifacts: plan=%d hosted=%d redacted=%d bytes",
            len(raw_plan), len(hosted), len(redacted),
        )
        return ArtifactBundle(
            raw_plan=raw_plan,
            hosted_json_plan=hosted,
            redacted_json_plan=redacted,
            structured_json=structured,
        )
