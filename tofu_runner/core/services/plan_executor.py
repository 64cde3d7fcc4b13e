"""
Plan executor — ``init`` then ``plan`` with structured JSON output.

    NOT_INITIALIZED → INITIALIZED → PLANNED_CHANGES
                                  → PLANNED_NO_CHANGES
                    (any step)    → FAILED

``init`` is run once, without upgrade, and is never retried.  The plan
always writes a binary plan file; its JSON events are streamed to the
caller's writer as the engine produces them.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.errors import EngineCommandError, EngineInitFailed, PlanExecutionFailed
from tofu_runner.core.models.engine import PlanOptions, PlanResult
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.streams import DISCARD, console_stderr

PLAN_FILE_NAME = "tfplan"


class PlanState(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    INITIALIZED = "initialized"
    PLANNED_CHANGES = "planned_changes"
    PLANNED_NO_CHANGES = "planned_no_changes"
    FAILED = "failed"


def parse_targets(targets: str) -> tuple[str, ...]:
    """Split a comma-separated target list, keeping input order."""
    if not targets:
        return ()
    return tuple(t.strip() for t in targets.split(",") if t.strip())


def build_plan_options(config: RunConfig) -> PlanOptions:
    """Plan options for a run: plan file always, lock/destroy/targets per config."""
    return PlanOptions(
        out=PLAN_FILE_NAME,
        lock=not config.plan_only,
        destroy=config.destroy,
        targets=parse_targets(config.targets),
    )


class PlanExecutor:
    """Drive one engine through init and plan.

    Args:
        engine: The engine to drive.
        options: Plan options (see ``build_plan_options``).
        stderr: Where engine stderr goes once a plan with changes is done
            (default: the process stderr).
        logger: Optional injected logger.
    """

    def __init__(
        self,
        engine: Engine,
        options: PlanOptions,
        *,
        stderr: BinaryWriter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._engine = engine
        self._options = options
        self._stderr = stderr
        self._log = component_logger(__name__, logger)
        self.state = PlanState.NOT_INITIALIZED

    @property
    def plan_file_path(self) -> str:
        return str(Path(self._engine.working_dir) / self._options.out)

    def initialize(self) -> None:
        """Run ``init``.

        Raises:
            EngineInitFailed: ``init`` failed; the run cannot continue.
        """
        self._log.debug("Initializing %s in %s", self._engine.name, self._engine.working_dir)
        try:
            self._engine.init(upgrade=False)
        except EngineCommandError as e:
            self.state = PlanState.FAILED
            raise EngineInitFailed(f"Failed to initialize engine: {e}") from e
        self.state = PlanState.INITIALIZED
        self._log.debug("Engine initialized")

    def plan(self, writer: BinaryWriter) -> PlanResult:
        """Run the plan, streaming JSON events to ``writer``.

        After a plan with changes the engine's stdout is discarded and its
        stderr goes to the process stderr, so later show/schema calls stay
        out of the captured log.

        Raises:
            PlanExecutionFailed: Not initialized, or the plan failed.
        """
        if self.state is not PlanState.INITIALIZED:
            raise PlanExecutionFailed(f"Cannot plan from state {self.state.value}")

        opts = self._options
        self._log.info(
            "Planning (lock=%s, destroy=%s, targets=%s)",
            opts.lock, opts.destroy, list(opts.targets) or "all",
        )
        try:
            has_changes = self._engine.plan_json(writer, opts)
        except EngineCommandError as e:
            self.state = PlanState.FAILED
            raise PlanExecutionFailed(f"Plan failed: {e}") from e

        if not has_changes:
            self.state = PlanState.PLANNED_NO_CHANGES
            self._log.info("No changes, nothing to upload")
            return PlanResult(has_changes=False, plan_file_path=self.plan_file_path)

        self.state = PlanState.PLANNED_CHANGES
        try:
            self._engine.set_stdout(DISCARD)
            self._engine.set_stderr(self._stderr or console_stderr())
        except EngineCommandError as e:
            self.state = PlanState.FAILED
            raise PlanExecutionFailed(f"Cannot rebind engine output: {e}") from e

        self._log.info("Plan has changes, written to %s", self.plan_file_path)
        return PlanResult(has_changes=True, plan_file_path=self.plan_file_path)
