"""
Control-plane bootstrap.

The runner only needs the client to come up: construction validates the
API address and credentials and must succeed before the engine is
touched.  No API calls are made from the plan pipeline.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from tofu_runner.core.errors import ControlPlaneBootstrapFailed
from tofu_runner.core.observability.logging_config import component_logger


class ControlPlaneClient:
    """Authenticated handle on the control-plane API.

    Raises:
        ControlPlaneBootstrapFailed: The address is not an http(s) URL or
            no token is available.
    """

    def __init__(
        self,
        address: str,
        token: str,
        *,
        run_id: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        parsed = urlparse(address)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ControlPlaneBootstrapFailed(f"Invalid control-plane address: {address!r}")
        if not token:
            raise ControlPlaneBootstrapFailed(
                "No API token available (set TFE_TOKEN or pass a token in the config)"
            )

        self.address = address.rstrip("/")
        self.run_id = run_id
        self._log = component_logger(__name__, logger)
        self._log.debug("Control-plane client ready for %s", self.address)

    def __repr__(self) -> str:
        return f"<ControlPlaneClient address={self.address!r} run_id={self.run_id!r}>"
