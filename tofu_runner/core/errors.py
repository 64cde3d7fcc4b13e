"""
Error taxonomy — every failure the pipeline can report.

Fatal stages (version, install, environment, init, plan, assembly,
serialization) raise one of these and abort the run.  Upload failures
are reported as values by the fan-out; ``UploadFailed`` and
``LogUploadFailed`` exist so the same vocabulary shows up in results
and logs.
"""

from __future__ import annotations


class RunnerError(Exception):
    """Base class for every error raised by tofu-runner."""

    kind = "runner_error"


class ConfigError(RunnerError):
    """Raised when runner configuration is invalid or unreadable."""

    kind = "config_error"


class InvalidVersion(RunnerError):
    kind = "invalid_version"


class DownloadFailed(RunnerError):
    kind = "download_failed"


class BinaryNotFound(RunnerError):
    kind = "binary_not_found"


class InstallFailed(RunnerError):
    kind = "install_failed"


class EnvironmentSetupFailed(RunnerError):
    kind = "environment_setup_failed"


class EngineInitFailed(RunnerError):
    kind = "engine_init_failed"


class PlanExecutionFailed(RunnerError):
    kind = "plan_execution_failed"


class ArtifactAssemblyFailed(RunnerError):
    """The engine could not describe a finished plan (show / schemas)."""

    kind = "artifact_assembly_failed"


class ArtifactSerializationFailed(RunnerError):
    kind = "artifact_serialization_failed"


class UploadFailed(RunnerError):
    kind = "upload_failed"


class LogUploadFailed(RunnerError):
    kind = "log_upload_failed"


class ControlPlaneBootstrapFailed(RunnerError):
    kind = "control_plane_bootstrap_failed"


class Unimplemented(RunnerError):
    """The requested operation exists on the CLI but is not implemented."""

    kind = "unimplemented"


class EngineCommandError(RunnerError):
    """An engine subcommand exited non-zero or could not be started.

    Raised by engine adapters; the plan executor and the artifact
    assembler wrap it into their own stage error.
    """

    kind = "engine_command_error"

    def __init__(self, message: str, *, command: str = "", returncode: int | None = None,
                 stderr: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
