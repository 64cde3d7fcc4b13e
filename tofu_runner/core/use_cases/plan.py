"""
Plan use case — the full runner pipeline for one invocation.

    bootstrap → resolve version → provision engine → bind environment
    → init → plan ─┬─ no changes → done
                   └─ changes → inspect → assemble → upload fan-out
    (always, once the engine is bound) → flush captured log

Fatal stages raise and are recorded on the result; uploads report
per-artifact outcomes and never abort the run.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.adapters.mock import MockEngine
from tofu_runner.adapters.tofu.cli import TofuCLI
from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.errors import (
    ConfigError,
    EngineCommandError,
    InstallFailed,
    PlanExecutionFailed,
    RunnerError,
    Unimplemented,
)
from tofu_runner.core.models.artifacts import FanOutReport, UploadResult
from tofu_runner.core.models.engine import InstalledEngine, PlanResult, VersionSpec
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.artifacts import ArtifactAssembler
from tofu_runner.core.services.control_plane import ControlPlaneClient
from tofu_runner.core.services.environment import setup_environment
from tofu_runner.core.services.log_capture import LogUploadAdapter
from tofu_runner.core.services.plan_executor import PlanExecutor, build_plan_options
from tofu_runner.core.services.provision import provision_engine
from tofu_runner.core.services.streams import TeeWriter, console_stderr, console_stdout
from tofu_runner.core.services.uploads import HttpUploader, artifact_uploads, fan_out
from tofu_runner.core.services.version import resolve_version

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_UPLOAD_FAILED = 3

OPERATIONS = ("plan", "apply", "destroy")

Provisioner = Callable[..., InstalledEngine]
EngineFactory = Callable[[InstalledEngine], Engine]


@dataclass
class PlanRunResult:
    """Result of one runner invocation."""

    operation: str = "plan"
    version: str = ""
    engine: InstalledEngine | None = None
    plan: PlanResult | None = None
    uploads: FanOutReport | None = None
    log_upload: UploadResult | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def upload_failures(self) -> list[UploadResult]:
        failures = list(self.uploads.failed) if self.uploads else []
        if self.log_upload is not None and self.log_upload.failed:
            failures.append(self.log_upload)
        return failures

    @property
    def exit_code(self) -> int:
        if self.error:
            return EXIT_FATAL
        if self.upload_failures:
            return EXIT_UPLOAD_FAILED
        return EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "operation": self.operation,
            "exit_code": self.exit_code,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        if self.version:
            result["version"] = self.version
        if self.engine:
            result["engine"] = self.engine.model_dump(mode="json")
        if self.plan:
            result["plan"] = self.plan.to_dict()
        if self.uploads:
            result["uploads"] = self.uploads.to_dict()
        if self.log_upload:
            result["log_upload"] = self.log_upload.model_dump(mode="json")
        return result


def default_engine_factory(
    config: RunConfig,
    log: logging.Logger | None = None,
) -> EngineFactory:
    """Engine constructor for the configured mode (real CLI or mock)."""

    def _factory(installed: InstalledEngine) -> Engine:
        if config.mock:
            return MockEngine(installed.working_directory)
        return TofuCLI(installed.working_directory, installed.executable_path, logger=log)

    return _factory


def _fail(result: PlanRunResult, error: RunnerError, log: logging.Logger) -> PlanRunResult:
    result.error = str(error)
    result.error_kind = error.kind
    log.error("%s: %s", error.kind, error)
    return result


def _install(
    config: RunConfig,
    spec: VersionSpec,
    provisioner: Provisioner | None,
    log: logging.Logger,
    injected: logging.Logger | None,
) -> InstalledEngine:
    if config.mock:
        log.info("Mock mode, skipping engine install")
        return InstalledEngine(
            executable_path="",
            working_directory=str(config.working_directory),
            version=spec.version,
        )
    log.info("Installing tofu for %s", config.working_directory)
    return (provisioner or provision_engine)(config, spec, logger=injected)


def run_plan(
    config: RunConfig,
    *,
    provisioner: Provisioner | None = None,
    engine_factory: EngineFactory | None = None,
    uploader: HttpUploader | None = None,
    log_adapter: LogUploadAdapter | None = None,
    console: BinaryWriter | None = None,
    console_err: BinaryWriter | None = None,
    environ: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> PlanRunResult:
    """Run the plan pipeline.

    Args:
        config: Immutable run configuration.
        provisioner: ``(config, spec, logger=...) -> InstalledEngine``
            (default: ``provision_engine``).
        engine_factory: Builds the engine from the installed binary
            (default: ``TofuCLI``, or ``MockEngine`` when ``config.mock``).
        uploader: Artifact uploader (default: ``HttpUploader``).
        log_adapter: Log capture sink (default: from ``config``).
        console: Where engine output is echoed (default: stdout).
        console_err: Where engine stderr is echoed (default: stderr).
        environ: Parent environment (default: ``os.environ``).
        logger: Injected logger for every component.

    Returns:
        PlanRunResult; ``error`` is set when a fatal stage failed.
    """
    log = component_logger(__name__, logger)
    result = PlanRunResult(operation="plan")

    # ── Bootstrap, version, install ──────────────────────────────
    try:
        if config.api_address:
            ControlPlaneClient(config.api_address, config.token, run_id=config.run_id, logger=logger)

        spec = resolve_version(config.version, config.default_version)
        result.version = spec.version
        log.info("Found tofu version %s", spec.version)

        installed = _install(config, spec, provisioner, log, logger)
        result.engine = installed

        factory = engine_factory or default_engine_factory(config, logger)
        try:
            engine = factory(installed)
        except EngineCommandError as e:
            raise InstallFailed(f"Failed to install tofu: {e}") from e
    except RunnerError as e:
        return _fail(result, e, log)

    # ── Execute with log capture ─────────────────────────────────
    log.debug("Setting up log adapter")
    capture = log_adapter or LogUploadAdapter(
        config.resolved_log_upload_url,
        token=config.token,
        timeout=config.http_timeout,
        logger=logger,
    )
    out = TeeWriter(capture, console or console_stdout())
    err = TeeWriter(capture, console_err or console_stderr())

    try:
        log.debug("Setting up execution environment")
        setup_environment(engine, out, err, environ=environ, logger=logger)

        executor = PlanExecutor(engine, build_plan_options(config), stderr=console_err, logger=logger)
        executor.initialize()

        structured = io.BytesIO()
        plan = executor.plan(TeeWriter(out, structured))
        result.plan = plan

        if plan.has_changes:
            assembler = ArtifactAssembler(engine, logger=logger)
            plan = assembler.inspect(plan)
            result.plan = plan
            bundle = assembler.assemble(plan, structured.getvalue())

            result.uploads = fan_out(
                uploader or HttpUploader(timeout=config.http_timeout, logger=logger),
                artifact_uploads(config, bundle),
                logger=logger,
            )
            if result.uploads.failed:
                log.error(
                    "%d artifact upload(s) failed: %s",
                    len(result.uploads.failed),
                    ", ".join(r.artifact for r in result.uploads.failed),
                )
    except RunnerError as e:
        _fail(result, e, log)
    except OSError as e:
        # console side of the output tee went away (e.g. stdout piped into head)
        _fail(result, PlanExecutionFailed(f"Cannot write engine output: {e}"), log)
    finally:
        result.log_upload = capture.flush()

    return result


def run_operation(operation: str, config: RunConfig, **kwargs: Any) -> PlanRunResult:
    """Dispatch an operation name; only ``plan`` is implemented.

    ``apply`` and ``destroy`` fail with ``Unimplemented`` before anything is
    installed.
    """
    log = component_logger(__name__, kwargs.get("logger"))
    if operation == "plan":
        return run_plan(config, **kwargs)

    result = PlanRunResult(operation=operation)
    if operation in OPERATIONS:
        return _fail(result, Unimplemented(f"Operation '{operation}' is not implemented"), log)
    return _fail(result, ConfigError(f"Unknown operation '{operation}'"), log)
