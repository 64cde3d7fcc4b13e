"""
Engine adapter base — the contract between the pipeline and the IaC engine.

The pipeline never runs engine commands itself.  It drives an ``Engine``:
bind environment and output streams, ``init``, ``plan_json``, then
``show_plan_file`` and ``providers_schema`` to describe the result.

Unlike action adapters, engines raise: a failed subcommand surfaces as
``EngineCommandError`` and the calling stage decides how fatal it is.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from tofu_runner.core.models.engine import PlanOptions


class BinaryWriter(Protocol):
    """Anything bytes can be written to (files, BytesIO, tee writers)."""

    def write(self, data: bytes, /) -> int: ...


class Engine(ABC):
    """Abstract base class for engine drivers.

    To add a driver:
        1. Subclass Engine
        2. Implement the abstract methods
        3. Construct it from ``tofu_runner.core.use_cases.plan``
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Driver identifier (e.g., 'tofu', 'mock')."""

    @property
    @abstractmethod
    def working_dir(self) -> str:
        """Directory every command runs in."""

    @abstractmethod
    def set_env(self, env: dict[str, str]) -> None:
        """Replace the environment of every later command."""

    @abstractmethod
    def set_stdout(self, writer: BinaryWriter) -> None:
        """Where command stdout goes (``plan_json`` excepted)."""

    @abstractmethod
    def set_stderr(self, writer: BinaryWriter) -> None:
        """Where command stderr goes."""

    @abstractmethod
    def init(self, upgrade: bool = False) -> None:
        """Initialize the working directory."""

    @abstractmethod
    def plan_json(self, writer: BinaryWriter, options: PlanOptions) -> bool:
        """Run a plan streaming JSON events to ``writer``.

        Returns:
            Whether the plan contains changes.
        """

    @abstractmethod
    def show_plan_file(self, path: str) -> dict[str, Any]:
        """Redacted JSON representation of a saved plan file."""

    @abstractmethod
    def providers_schema(self) -> dict[str, Any]:
        """Provider schema catalog for the working directory."""

    def is_managed_env(self, key: str) -> bool:
        """Whether ``key`` is owned by the driver and refused by ``set_env``."""
        return False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} dir={self.working_dir!r}>"
