"""
Mock engine — in-memory engine driver for ``--mock`` runs and tests.

Behaves like a well-formed engine without touching a binary: emits a few
JSON plan events, writes a placeholder plan file, and answers show and
schema queries from canned documents.  Every call is logged so tests can
assert on what the pipeline did.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.core.errors import EngineCommandError
from tofu_runner.core.models.engine import PlanOptions
from tofu_runner.core.services.streams import DISCARD

MOCK_PLAN_BYTES = b"[mock] binary plan"


def _default_plan() -> dict[str, Any]:
    return {
        "format_version": "1.2",
        "terraform_version": "1.8.2",
        "output_changes": {},
        "resource_changes": [],
        "resource_drift": [],
        "relevant_attributes": [],
    }


def _default_schemas() -> dict[str, Any]:
    return {"format_version": "1.0", "provider_schemas": {}}


class MockEngine(Engine):
    """Configurable engine double.

    Args:
        working_dir: Directory the plan file is written into.
        has_changes: What ``plan_json`` reports.
        plan: Document returned by ``show_plan_file``.
        schemas: Document returned by ``providers_schema``.
        events: JSON events ``plan_json`` streams (one per line).
        fail_on: Command names (``init``, ``plan``, ``show``, ``schema``,
            ``set_env``) that raise ``EngineCommandError``.
    """

    def __init__(
        self,
        working_dir: str | Path = ".",
        *,
        has_changes: bool = True,
        plan: dict[str, Any] | None = None,
        schemas: dict[str, Any] | None = None,
        events: list[dict[str, Any]] | None = None,
        fail_on: set[str] | frozenset[str] = frozenset(),
    ) -> None:
        self._working_dir = str(Path(working_dir).resolve())
        self.has_changes = has_changes
        self.plan = plan if plan is not None else _default_plan()
        self.schemas = schemas if schemas is not None else _default_schemas()
        self.events = events if events is not None else [
            {"@level": "info", "@message": "[mock] Plan started", "type": "version"},
            {"@level": "info", "@message": "[mock] Plan complete", "type": "change_summary"},
        ]
        self.fail_on = set(fail_on)

        self.env: dict[str, str] | None = None
        self.stdout: BinaryWriter = DISCARD
        self.stderr: BinaryWriter = DISCARD
        self.last_options: PlanOptions | None = None
        self._call_log: list[str] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def working_dir(self) -> str:
        return self._working_dir

    @property
    def call_log(self) -> list[str]:
        """Command names in call order."""
        return self._call_log

    def call_count(self, command: str | None = None) -> int:
        if command is None:
            return len(self._call_log)
        return self._call_log.count(command)

    def set_env(self, env: dict[str, str]) -> None:
        self._record("set_env")
        self.env = dict(env)

    def set_stdout(self, writer: BinaryWriter) -> None:
        self.stdout = writer

    def set_stderr(self, writer: BinaryWriter) -> None:
        self.stderr = writer

    def init(self, upgrade: bool = False) -> None:
        self._record("init")
        self.stdout.write(b"[mock] OpenTofu has been successfully initialized!\n")

    def plan_json(self, writer: BinaryWriter, options: PlanOptions) -> bool:
        self._record("plan")
        self.last_options = options
        for event in self.events:
            writer.write(json.dumps(event).encode("utf-8") + b"\n")
        if self.has_changes:
            try:
                (Path(self._working_dir) / options.out).write_bytes(MOCK_PLAN_BYTES)
            except OSError as e:
                raise EngineCommandError(f"[mock] cannot write plan file: {e}", command="plan") from e
        return self.has_changes

    def show_plan_file(self, path: str) -> dict[str, Any]:
        self._record("show")
        self.stdout.write(json.dumps(self.plan).encode("utf-8"))
        return self.plan

    def providers_schema(self) -> dict[str, Any]:
        self._record("schema")
        return self.schemas

    def _record(self, command: str) -> None:
        self._call_log.append(command)
        if command in self.fail_on:
            raise EngineCommandError(f"[mock] {command} failed", command=command, returncode=1)
