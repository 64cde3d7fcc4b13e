"""
Tests for artifact uploads and the concurrent fan-out.
"""

import io
import threading
import urllib.error
from unittest.mock import patch

from tofu_runner.core.config.loader import RunConfig
from tofu_runner.core.errors import UploadFailed
from tofu_runner.core.models.artifacts import (
    HOSTED_JSON_PLAN,
    PLAN_FILE,
    REDACTED_JSON_PLAN,
    STRUCTURED_JSON,
    ArtifactBundle,
    UploadResult,
)
from tofu_runner.core.services.uploads import HttpUploader, Upload, artifact_uploads, fan_out

BUNDLE = ArtifactBundle(
    raw_plan=b"plan-bytes",
    hosted_json_plan=b'{"hosted": true}',
    redacted_json_plan=b'{"redacted": true}',
    structured_json=b'{"type":"version"}\n',
)


class TestHttpUploader:
    def test_put_201(self, response, quiet_logger):
        with patch("urllib.request.urlopen", return_value=response(201)) as urlopen:
            result = HttpUploader(timeout=5, logger=quiet_logger).put(PLAN_FILE, "http://u/p", b"abc")

        assert result.ok
        assert result.status_code == 201
        assert result.size_bytes == 3
        req = urlopen.call_args.args[0]
        assert req.get_method() == "PUT"
        assert req.full_url == "http://u/p"
        assert req.data == b"abc"
        assert req.get_header("Content-type") == "text/plain"
        assert urlopen.call_args.kwargs["timeout"] == 5

    def test_other_2xx_is_failure(self, response, quiet_logger):
        with patch("urllib.request.urlopen", return_value=response(200)):
            result = HttpUploader(logger=quiet_logger).put(PLAN_FILE, "http://u/p", b"abc")
        assert result.failed
        assert result.status_code == 200
        assert result.error_kind == UploadFailed.kind

    def test_http_error(self, quiet_logger):
        error = urllib.error.HTTPError("http://u/p", 403, "Forbidden", None, io.BytesIO(b""))
        with patch("urllib.request.urlopen", side_effect=error):
            result = HttpUploader(logger=quiet_logger).put(PLAN_FILE, "http://u/p", b"abc")
        assert result.failed
        assert result.status_code == 403

    def test_network_error(self, quiet_logger):
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            result = HttpUploader(logger=quiet_logger).put(PLAN_FILE, "http://u/p", b"abc")
        assert result.failed
        assert result.status_code is None
        assert "refused" in result.error

    def test_extra_headers(self, response, quiet_logger):
        uploader = HttpUploader(headers={"Authorization": "Bearer t"}, logger=quiet_logger)
        with patch("urllib.request.urlopen", return_value=response(201)) as urlopen:
            uploader.put(PLAN_FILE, "http://u/p", b"")
        assert urlopen.call_args.args[0].get_header("Authorization") == "Bearer t"


class TestArtifactUploads:
    def test_three_artifacts(self):
        config = RunConfig(
            hosted_plan_upload_url="http://u/plan",
            hosted_json_plan_upload_url="http://u/hosted",
            redacted_json_upload_url="http://u/redacted",
        )
        uploads = artifact_uploads(config, BUNDLE)
        assert [(u.artifact, u.url, u.body) for u in uploads] == [
            (PLAN_FILE, "http://u/plan", b"plan-bytes"),
            (HOSTED_JSON_PLAN, "http://u/hosted", b'{"hosted": true}'),
            (REDACTED_JSON_PLAN, "http://u/redacted", b'{"redacted": true}'),
        ]

    def test_structured_json_when_configured(self):
        config = RunConfig(hosted_structured_json_upload_url="http://u/structured")
        uploads = artifact_uploads(config, BUNDLE)
        assert uploads[-1] == Upload(STRUCTURED_JSON, "http://u/structured", BUNDLE.structured_json)


class RecordingUploader(HttpUploader):
    """Answers from a table instead of the network."""

    def __init__(self, outcomes: dict[str, int]):
        super().__init__()
        self.outcomes = outcomes
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def put(self, artifact, url, body):
        with self._lock:
            self.calls.append(artifact)
        status = self.outcomes.get(artifact, 201)
        if status == 201:
            return UploadResult.success(artifact, url, status_code=status)
        return UploadResult.failure(artifact, url, f"response code: {status}", status_code=status)


class TestFanOut:
    def _uploads(self):
        return [
            Upload(PLAN_FILE, "http://u/plan", b"p"),
            Upload(HOSTED_JSON_PLAN, "http://u/hosted", b"h"),
            Upload(REDACTED_JSON_PLAN, "http://u/redacted", b"r"),
        ]

    def test_all_succeed(self, quiet_logger):
        uploader = RecordingUploader({})
        report = fan_out(uploader, self._uploads(), logger=quiet_logger)
        assert report.ok
        assert report.succeeded == 3
        assert sorted(uploader.calls) == sorted([PLAN_FILE, HOSTED_JSON_PLAN, REDACTED_JSON_PLAN])

    def test_one_failure_does_not_stop_the_others(self, quiet_logger):
        uploader = RecordingUploader({HOSTED_JSON_PLAN: 500})
        report = fan_out(uploader, self._uploads(), logger=quiet_logger)

        assert report.total == 3
        assert len(uploader.calls) == 3
        assert [r.artifact for r in report.failed] == [HOSTED_JSON_PLAN]
        assert report.get(PLAN_FILE).ok
        assert report.get(REDACTED_JSON_PLAN).ok
        assert report.status == "partial"

    def test_results_in_input_order(self, quiet_logger):
        report = fan_out(RecordingUploader({}), self._uploads(), logger=quiet_logger)
        assert [r.artifact for r in report.results] == [PLAN_FILE, HOSTED_JSON_PLAN, REDACTED_JSON_PLAN]

    def test_empty_url_is_skipped(self, quiet_logger):
        uploads = self._uploads()
        uploads[0] = Upload(PLAN_FILE, "", b"p")
        uploader = RecordingUploader({})
        report = fan_out(uploader, uploads, logger=quiet_logger)

        assert PLAN_FILE not in uploader.calls
        assert report.get(PLAN_FILE).skipped
        assert report.skipped == 1
        assert report.ok

    def test_uploader_exception_becomes_failure(self, quiet_logger):
        class Exploding(HttpUploader):
            def put(self, artifact, url, body):
                raise RuntimeError("boom")

        report = fan_out(Exploding(), self._uploads()[:1], logger=quiet_logger)
        assert report.status == "failed"
        assert report.failed[0].error == "boom"

    def test_over_http(self, response, quiet_logger):
        statuses = {"http://u/plan": 201, "http://u/hosted": 502, "http://u/redacted": 201}

        def fake_urlopen(req, timeout):
            return response(statuses[req.full_url])

        with patch("urllib.request.urlopen", side_effect=fake_urlopen) as urlopen:
            report = fan_out(HttpUploader(logger=quiet_logger), self._uploads(), logger=quiet_logger)

        assert urlopen.call_count == 3
        assert report.total == 3
        assert [r.artifact for r in report.failed] == [HOSTED_JSON_PLAN]
        assert report.failed[0].status_code == 502
