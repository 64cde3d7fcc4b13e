"""
Log capture — buffer everything the engine prints, ship it once at the end.

The adapter is a plain write sink: every chunk is appended in order and
the write always succeeds.  ``flush()`` joins the chunks into one body
and PUTs it to the log endpoint.  Streaming while the run is still in
progress is not done.
"""

from __future__ import annotations

import logging

from tofu_runner.core.errors import LogUploadFailed
from tofu_runner.core.models.artifacts import LOGS, UploadResult
from tofu_runner.core.observability.logging_config import component_logger
from tofu_runner.core.services.uploads import HttpUploader


class LogUploadAdapter:
    """Append-only log buffer with a single upload on ``flush()``.

    Args:
        url: Log upload URL. Empty means the log is kept but not sent.
        uploader: Performs the PUT (default: ``HttpUploader``).
        token: Bearer token sent with the upload, if any.
        logger: Optional injected logger.
    """

    def __init__(
        self,
        url: str,
        uploader: HttpUploader | None = None,
        *,
        token: str = "",
        timeout: float = 300.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = url
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._uploader = uploader or HttpUploader(timeout=timeout, headers=headers, logger=logger)
        self._chunks: list[bytes] = []
        self._result: UploadResult | None = None
        self._log = component_logger(__name__, logger)

    @property
    def url(self) -> str:
        return self._url

    @property
    def chunks(self) -> tuple[bytes, ...]:
        return tuple(self._chunks)

    @property
    def flushed(self) -> bool:
        return self._result is not None

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def flush(self) -> UploadResult:
        """Upload the whole buffer once; later calls return the first result.

        Failures are returned (tagged ``log_upload_failed``), not raised.
        """
        if self._result is not None:
            self._log.debug("Log buffer already flushed")
            return self._result

        if not self._url:
            self._log.info("No log upload URL configured, not uploading logs")
            self._result = UploadResult.skip(LOGS)
            return self._result

        body = self.getvalue()
        self._log.info("Uploading logs (%d bytes)", len(body))
        self._result = self._uploader.put(LOGS, self._url, body)
        if self._result.failed:
            self._result = self._result.model_copy(update={"error_kind": LogUploadFailed.kind})
            self._log.error("Failed uploading log flush: %s", self._result.error)
        return self._result
