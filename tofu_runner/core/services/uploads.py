"""
Artifact upload — HTTP PUT and the concurrent fan-out.

Each artifact goes to its own URL on its own worker thread.  Workers
never raise: every outcome, good or bad, comes back as an
``UploadResult``.  One failing upload does not cancel or delay the
others, and ``fan_out`` returns only after all of them have finished.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass

from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.models.artifacts import (
    HOSTED_JSON_PLAN,
    PLAN_FILE,
    REDACTED_JSON_PLAN,
    STRUCTURED_JSON,
    ArtifactBundle,
    FanOutReport,
    UploadResult,
)
from tofu_runner.core.observability.logging_config import component_logger

CONTENT_TYPE = "text/plain"

# The upload endpoints answer a stored object with 201; anything else failed.
SUCCESS_STATUS = 201


@dataclass(frozen=True)
class Upload:
    """One artifact bound for one URL."""

    artifact: str
    url: str
    body: bytes


class HttpUploader:
    """PUT payloads with ``Content-Type: text/plain``.

    Args:
        timeout: Socket timeout per request, in seconds.
        headers: Extra headers sent with every request.
        logger: Optional injected logger.
    """

    def __init__(
        self,
        timeout: float = 300.0,
        headers: dict[str, str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._log = component_logger(__name__, logger)

    def put(self, artifact: str, url: str, body: bytes) -> UploadResult:
        """Upload ``body`` to ``url``. Never raises."""
        headers = {"Content-Type": CONTENT_TYPE, **self._headers}
        start = time.monotonic()

        def _elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        try:
            req = urllib.request.Request(url, data=body, headers=headers, method="PUT")
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = resp.status
        except urllib.error.HTTPError as e:
            status = e.code
            e.close()
        except (urllib.error.URLError, OSError, ValueError) as e:
            return UploadResult.failure(
                artifact, url, f"request failed: {e}",
                size_bytes=len(body), duration_ms=_elapsed(),
            )

        if status != SUCCESS_STATUS:
            return UploadResult.failure(
                artifact, url, f"response code: {status}",
                status_code=status, size_bytes=len(body), duration_ms=_elapsed(),
            )
        return UploadResult.success(
            artifact, url, status_code=status, size_bytes=len(body), duration_ms=_elapsed(),
        )


def artifact_uploads(config: RunConfig, bundle: ArtifactBundle) -> list[Upload]:
    """Pair each artifact with its configured destination.

    The structured JSON stream is only included when its URL is set.
    """
    uploads = [
        Upload(PLAN_FILE, config.hosted_plan_upload_url, bundle.raw_plan),
        Upload(HOSTED_JSON_PLAN, config.hosted_json_plan_upload_url, bundle.hosted_json_plan),
        Upload(REDACTED_JSON_PLAN, config.redacted_json_upload_url, bundle.redacted_json_plan),
    ]
    if config.hosted_structured_json_upload_url:
        uploads.append(Upload(
            STRUCTURED_JSON, config.hosted_structured_json_upload_url, bundle.structured_json,
        ))
    return uploads


def fan_out(
    uploader: HttpUploader,
    uploads: list[Upload],
    *,
    logger: logging.Logger | None = None,
) -> FanOutReport:
    """Run every upload concurrently and wait for all of them.

    Uploads without a URL are reported as skipped and send nothing.

    Returns:
        FanOutReport with one result per upload, in input order.
    """
    log = component_logger(__name__, logger)
    results: dict[int, UploadResult] = {}
    runnable: list[tuple[int, Upload]] = []

    for i, upload in enumerate(uploads):
        if upload.url:
            runnable.append((i, upload))
        else:
            log.warning("No upload URL configured for %s, skipping", upload.artifact)
            results[i] = UploadResult.skip(upload.artifact)

    def _exec_upload(upload: Upload) -> UploadResult:
        log.info("Uploading %s (%d bytes)", upload.artifact, len(upload.body))
        try:
            result = uploader.put(upload.artifact, upload.url, upload.body)
        except Exception as e:
            log.exception("Unexpected error uploading %s", upload.artifact)
            result = UploadResult.failure(upload.artifact, upload.url, str(e))
        if result.ok:
            log.info("Uploaded %s (%dms)", upload.artifact, result.duration_ms)
        else:
            log.error("Failed uploading %s: %s", upload.artifact, result.error)
        return result

    if runnable:
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=len(runnable), thread_name_prefix="upload",
        ) as pool:
            futures = {pool.submit(_exec_upload, upload): i for i, upload in runnable}
            for future in concurrent.futures.as_completed(futures):
                results[futures[future]] = future.result()

    return FanOutReport(results=[results[i] for i in range(len(uploads))])
