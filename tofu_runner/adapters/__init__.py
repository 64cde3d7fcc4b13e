"""Adapters — engine drivers the pipeline talks to.

Public re-exports for convenient access.
"""

from tofu_runner.adapters.base import BinaryWriter, Engine
from tofu_runner.adapters.mock import MockEngine
from tofu_runner.adapters.tofu.cli import TofuCLI

__all__ = [
    "BinaryWriter",
    "Engine",
    "MockEngine",
    "TofuCLI",
]
