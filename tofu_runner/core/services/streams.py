"""
Byte-stream writers used to route engine output.
"""

from __future__ import annotations

import sys
from typing import Any


class TeeWriter:
    """Write every chunk to each writer, in order.

    A failing writer aborts the write; later writers do not see the chunk.
    """

    def __init__(self, *writers: Any) -> None:
        self._writers = list(writers)

    def write(self, data: bytes) -> int:
        for writer in self._writers:
            writer.write(data)
        return len(data)


class DiscardWriter:
    """Accept and drop everything."""

    def write(self, data: bytes) -> int:
        return len(data)

    def flush(self) -> None:
        pass


DISCARD = DiscardWriter()


def console_stdout() -> Any:
    """Binary stdout (falls back to the text stream's buffer-less writer)."""
    return getattr(sys.stdout, "buffer", None) or _TextAdapter(sys.stdout)


def console_stderr() -> Any:
    return getattr(sys.stderr, "buffer", None) or _TextAdapter(sys.stderr)


class _TextAdapter:
    """Write bytes to a text stream (e.g. a captured stdout in tests)."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    def write(self, data: bytes) -> int:
        self._stream.write(data.decode("utf-8", errors="replace"))
        return len(data)

    def flush(self) -> None:
        self._stream.flush()
