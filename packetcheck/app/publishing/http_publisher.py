"""
Repository monitor upload.

Each completed repository result is submitted as an HTML form POST with
three fields:

    hostname              short name of the scanning host
    repository_directory  concrete repository path that was scanned
    repository_status     YAML serialization of the RunResult

Uploads are fire-and-forget: they run inside the worker that finished the
scan, are bounded by an HTTP timeout, and any failure is logged and
dropped so other repositories keep being scanned.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional

import httpx
import yaml

from packetcheck.app.publishing.publisher import ResultPublisher
from packetcheck.app.schemas.dispatch import OutcomeStatus, RepositoryOutcome
from packetcheck.app.schemas.results import RunResult

logger = logging.getLogger(__name__)


def short_hostname() -> str:
    return socket.gethostname().split(".")[0]


def serialize_result(result: RunResult) -> str:
    return yaml.safe_dump(
        result.model_dump(mode="json"),
        default_flow_style=False,
        sort_keys=False,
    )


class HttpFormPublisher(ResultPublisher):
    """Posts completed repository results to a monitoring endpoint."""

    def __init__(
        self,
        upload_url: str,
        *,
        timeout_seconds: float = 30.0,
        hostname: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._upload_url = upload_url
        self._hostname = hostname or short_hostname()
        # httpx.Client is safe to share between worker threads
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def publish(self, outcome: RepositoryOutcome) -> None:
        if outcome.status is not OutcomeStatus.COMPLETED or outcome.result is None:
            return

        logger.info("Uploading data for %s", outcome.path)

        try:
            response = self._client.post(
                self._upload_url,
                data={
                    "hostname": self._hostname,
                    "repository_directory": outcome.path,
                    "repository_status": serialize_result(outcome.result),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "upload for %s: HTTP %s", outcome.path, exc.response.status_code
            )
            return
        except httpx.RequestError as exc:
            logger.error("upload for %s: connection error: %s", outcome.path, exc)
            return

        logger.info(
            "Uploaded data result from upload is %s", response.text.strip()
        )

    def close(self) -> None:
        self._client.close()
