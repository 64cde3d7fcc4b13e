"""
Tests for artifact assembly.
"""

import io
import json
import math

import pytest

from tofu_runner.adapters.mock import MOCK_PLAN_BYTES, MockEngine
from tofu_runner.core.errors import ArtifactAssemblyFailed, ArtifactSerializationFailed
from tofu_runner.core.models.engine import PlanOptions, PlanResult
from tofu_runner.core.services.artifacts import ArtifactAssembler, build_hosted_plan
from tofu_runner.core.services.plan_executor import PlanExecutor

PLAN = {
    "format_version": "1.2",
    "terraform_version": "1.8.2",
    "output_changes": {"ip": {"actions": ["create"]}},
    "resource_changes": [
        {
            "address": "aws_instance.web",
            "type": "aws_instance",
            "change": {"actions": ["create"], "after": {"ami": "ami-123"}},
        }
    ],
    "resource_drift": [],
    "relevant_attributes": [{"resource": "aws_instance.web", "attribute": ["ami"]}],
}

SCHEMAS = {
    "format_version": "1.0",
    "provider_schemas": {"registry.opentofu.org/hashicorp/aws": {"resource_schemas": {}}},
}


def _planned(engine: MockEngine, logger) -> PlanResult:
    executor = PlanExecutor(engine, PlanOptions(), logger=logger)
    executor.initialize()
    return executor.plan(io.BytesIO())


class TestBuildHostedPlan:
    def test_fields(self):
        hosted = build_hosted_plan(PLAN, SCHEMAS)
        assert hosted.plan_format_version == "1.2"
        assert hosted.provider_format_version == "1.0"
        assert hosted.resource_changes == PLAN["resource_changes"]
        assert hosted.provider_schemas == SCHEMAS["provider_schemas"]

    def test_missing_sections(self):
        hosted = build_hosted_plan({}, {})
        assert hosted.resource_changes is None
        assert hosted.plan_format_version == ""


class TestArtifactAssembler:
    def test_assemble(self, workdir, quiet_logger):
        engine = MockEngine(workdir, plan=PLAN, schemas=SCHEMAS)
        assembler = ArtifactAssembler(engine, logger=quiet_logger)

        result = assembler.inspect(_planned(engine, quiet_logger))
        bundle = assembler.assemble(result, b'{"type":"version"}\n')

        assert bundle.raw_plan == MOCK_PLAN_BYTES
        assert json.loads(bundle.redacted_json_plan) == PLAN
        hosted = json.loads(bundle.hosted_json_plan)
        assert hosted["resource_changes"] == PLAN["resource_changes"]
        assert hosted["resource_drift"] == []
        assert hosted["provider_schemas"] == SCHEMAS["provider_schemas"]
        assert bundle.structured_json == b'{"type":"version"}\n'

    def test_no_changes_refused(self, workdir, quiet_logger):
        engine = MockEngine(workdir)
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        with pytest.raises(ArtifactAssemblyFailed):
            assembler.inspect(PlanResult(has_changes=False, plan_file_path=str(workdir / "tfplan")))
        assert engine.call_count("show") == 0
        assert engine.call_count("schema") == 0

    def test_show_failure(self, workdir, quiet_logger):
        engine = MockEngine(workdir, fail_on={"show"})
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        with pytest.raises(ArtifactAssemblyFailed):
            assembler.inspect(_planned(engine, quiet_logger))

    def test_schema_failure(self, workdir, quiet_logger):
        engine = MockEngine(workdir, fail_on={"schema"})
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        with pytest.raises(ArtifactAssemblyFailed):
            assembler.inspect(_planned(engine, quiet_logger))

    def test_not_inspected(self, workdir, quiet_logger):
        engine = MockEngine(workdir)
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        with pytest.raises(ArtifactAssemblyFailed, match="not been inspected"):
            assembler.assemble(_planned(engine, quiet_logger))

    def test_missing_plan_file(self, workdir, quiet_logger):
        engine = MockEngine(workdir)
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        result = assembler.inspect(_planned(engine, quiet_logger))
        (workdir / "tfplan").unlink()
        with pytest.raises(ArtifactAssemblyFailed, match="Cannot read plan file"):
            assembler.assemble(result)

    def test_unserializable_plan(self, workdir, quiet_logger):
        plan = dict(PLAN, resource_changes=[{"address": "x", "change": {"after": math.nan}}])
        engine = MockEngine(workdir, plan=plan)
        assembler = ArtifactAssembler(engine, logger=quiet_logger)
        result = assembler.inspect(_planned(engine, quiet_logger))
        with pytest.raises(ArtifactSerializationFailed):
            assembler.assemble(result)
