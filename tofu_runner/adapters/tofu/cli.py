"""
OpenTofu CLI driver — run ``tofu`` subcommands as subprocesses.

stdout is streamed line by line to the bound writer (or to the
caller's writer for ``plan_json``); stderr is pumped on a helper
thread so neither pipe can fill up and stall the child.
"""

from __future__ import annotations

import io
import json
import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import Any

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.core.errors import EngineCommandError
from tofu_runner.core.models.engine import PlanOptions
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.streams import DISCARD, TeeWriter

# Variables the driver sets itself; callers may not pass them in.
_MANAGED_ENV = frozenset({
    "TF_APPEND_USER_AGENT",
    "TF_DISABLE_PLUGIN_TLS",
    "TF_IN_AUTOMATION",
    "TF_INPUT",
    "TF_LOG",
    "TF_LOG_CORE",
    "TF_LOG_PATH",
    "TF_LOG_PROVIDER",
    "TF_REATTACH_PROVIDERS",
    "TF_SKIP_PROVIDER_VERIFY",
    "TF_WORKSPACE",
})
_MANAGED_PREFIXES = ("TF_CLI_ARGS",)

# plan -detailed-exitcode
_PLAN_NO_CHANGES = 0
_PLAN_CHANGES = 2

_STDERR_TAIL = 2000


class TofuCLI(Engine):
    """Drive a local ``tofu`` binary.

    Args:
        working_dir: Directory with the configuration; must exist.
        exec_path: Path to the engine executable; must exist.
        logger: Optional injected logger.
    """

    def __init__(
        self,
        working_dir: str | Path,
        exec_path: str | Path,
        logger: logging.Logger | None = None,
    ) -> None:
        wd = Path(working_dir)
        if not wd.is_dir():
            raise EngineCommandError(f"Working directory does not exist: {wd}")
        exe = Path(exec_path)
        if not exe.is_file():
            raise EngineCommandError(f"Engine executable not found: {exe}")

        self._working_dir = str(wd.resolve())
        self._exec_path = str(exe.resolve())
        self._env: dict[str, str] | None = None
        self._stdout: BinaryWriter = DISCARD
        self._stderr: BinaryWriter = DISCARD
        self._running = False
        self._log = component_logger(__name__, logger)

    @property
    def name(self) -> str:
        return "tofu"

    @property
    def working_dir(self) -> str:
        return self._working_dir

    def is_managed_env(self, key: str) -> bool:
        return key in _MANAGED_ENV or key.startswith(_MANAGED_PREFIXES)

    def set_env(self, env: dict[str, str]) -> None:
        if self._running:
            raise EngineCommandError("Cannot change environment while a command is running")
        managed = sorted(k for k in env if self.is_managed_env(k))
        if managed:
            raise EngineCommandError(
                f"Cannot set engine-managed environment variables: {', '.join(managed)}"
            )
        self._env = dict(env)

    def set_stdout(self, writer: BinaryWriter) -> None:
        if self._running:
            raise EngineCommandError("Cannot rebind stdout while a command is running")
        self._stdout = writer

    def set_stderr(self, writer: BinaryWriter) -> None:
        if self._running:
            raise EngineCommandError("Cannot rebind stderr while a command is running")
        self._stderr = writer

    # ── Commands ────────────────────────────────────────────────

    def init(self, upgrade: bool = False) -> None:
        args = ["init", "-input=false", "-no-color", f"-upgrade={str(upgrade).lower()}"]
        returncode, stderr = self._run(args, self._stdout)
        if returncode != 0:
            raise self._failure("init", returncode, stderr)

    def plan_json(self, writer: BinaryWriter, options: PlanOptions) -> bool:
        args = ["plan", "-json", "-input=false", "-detailed-exitcode", *options.to_args()]
        returncode, stderr = self._run(args, writer)
        if returncode == _PLAN_NO_CHANGES:
            return False
        if returncode == _PLAN_CHANGES:
            return True
        raise self._failure("plan", returncode, stderr)

    def show_plan_file(self, path: str) -> dict[str, Any]:
        return self._run_json(["show", "-json", "-no-color", path], "show")

    def providers_schema(self) -> dict[str, Any]:
        return self._run_json(["providers", "schema", "-json"], "providers schema")

    # ── Internals ───────────────────────────────────────────────

    def _run_json(self, args: list[str], label: str) -> dict[str, Any]:
        buf = io.BytesIO()
        returncode, stderr = self._run(args, TeeWriter(buf, self._stdout))
        if returncode != 0:
            raise self._failure(label, returncode, stderr)
        try:
            data = json.loads(buf.getvalue())
        except ValueError as e:
            raise EngineCommandError(f"{label} returned invalid JSON: {e}", command=label) from e
        if not isinstance(data, dict):
            raise EngineCommandError(f"{label} returned {type(data).__name__}, expected object",
                                     command=label)
        return data

    def _command_env(self) -> dict[str, str]:
        env = dict(os.environ if self._env is None else self._env)
        env["TF_IN_AUTOMATION"] = "1"
        env["TF_INPUT"] = "0"
        return env

    def _run(self, args: list[str], stdout: BinaryWriter) -> tuple[int, str]:
        """Run one subcommand; returns ``(returncode, stderr_text)``."""
        cmd = [self._exec_path, *args]
        self._log.debug("Executing: %s (cwd=%s)", " ".join(cmd), self._working_dir)

        stderr_chunks: list[bytes] = []
        self._running = True
        try:
            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=self._working_dir,
                    env=self._command_env(),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except OSError as e:
                raise EngineCommandError(f"Cannot start {cmd[0]}: {e}", command=args[0]) from e

            def _pump_stderr() -> None:
                assert proc.stderr is not None
                forward = True
                for line in proc.stderr:
                    stderr_chunks.append(line)
                    if not forward:
                        continue
                    try:
                        self._stderr.write(line)
                    except OSError as e:
                        # keep draining so the child never blocks on a full pipe
                        self._log.warning("Stopped forwarding %s stderr: %s", args[0], e)
                        forward = False

            pump = threading.Thread(target=_pump_stderr, name="tofu-stderr", daemon=True)
            pump.start()

            assert proc.stdout is not None
            try:
                for line in proc.stdout:
                    stdout.write(line)
            except OSError as e:
                proc.kill()
                raise EngineCommandError(
                    f"Cannot forward {args[0]} output: {e}", command=args[0],
                ) from e
            except BaseException:
                proc.kill()
                raise
            finally:
                returncode = proc.wait()
                pump.join()
                proc.stdout.close()
                if proc.stderr is not None:
                    proc.stderr.close()
        finally:
            self._running = False

        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
        self._log.debug("%s exited with code %d", args[0], returncode)
        return returncode, stderr

    def _failure(self, label: str, returncode: int, stderr: str) -> EngineCommandError:
        tail = stderr.strip()[-_STDERR_TAIL:]
        message = f"tofu {label} failed (exit {returncode})"
        if tail:
            message = f"{message}: {tail}"
        return EngineCommandError(message, command=label, returncode=returncode, stderr=tail)
