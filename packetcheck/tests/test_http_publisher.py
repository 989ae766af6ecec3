"""
Tests for the repository monitor upload.

Coverage matrix:

  completed outcome     → one form POST with hostname / directory / YAML status
  non-completed outcome → nothing posted
  HTTP error status     → logged, never raised
  connection failure    → logged, never raised
"""

import logging
from unittest.mock import MagicMock

import httpx
import yaml

from packetcheck.app.publishing import HttpFormPublisher
from packetcheck.app.schemas.dispatch import OutcomeStatus, RepositoryOutcome
from packetcheck.app.schemas.results import ErrorKind, RunResult

URL = "https://monitor.example.com/upload"


def _outcome(status=OutcomeStatus.COMPLETED):
    result = RunResult(path="/zones/a/repository", server_id="TEST01", checked_documents=3)
    result.errors["TEST0100000001"] = {ErrorKind.CONTENT_MISSING: "data/x.pdf"}
    return RepositoryOutcome(
        name="a",
        path="/zones/a/repository",
        status=status,
        result=result if status is OutcomeStatus.COMPLETED else None,
    )


def _client(response=None, error=None):
    client = MagicMock(spec=httpx.Client)
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    return client


def test_posts_form_with_yaml_status():
    response = httpx.Response(200, text="ok\n", request=httpx.Request("POST", URL))
    client = _client(response)

    HttpFormPublisher(URL, hostname="scanner", client=client).publish(_outcome())

    client.post.assert_called_once()
    args, kwargs = client.post.call_args
    assert args == (URL,)
    form = kwargs["data"]
    assert form["hostname"] == "scanner"
    assert form["repository_directory"] == "/zones/a/repository"

    status = yaml.safe_load(form["repository_status"])
    assert status["server_id"] == "TEST01"
    assert status["checked_documents"] == 3
    assert status["errors"] == {"TEST0100000001": {"content_missing": "data/x.pdf"}}


def test_skips_outcomes_without_result():
    client = _client()

    HttpFormPublisher(URL, hostname="scanner", client=client).publish(
        _outcome(OutcomeStatus.DISABLED)
    )

    client.post.assert_not_called()


def test_http_error_is_logged(caplog):
    response = httpx.Response(503, request=httpx.Request("POST", URL))
    publisher = HttpFormPublisher(URL, hostname="scanner", client=_client(response))

    with caplog.at_level(logging.ERROR):
        publisher.publish(_outcome())

    assert any("HTTP 503" in record.getMessage() for record in caplog.records)


def test_connection_error_is_logged(caplog):
    error = httpx.ConnectError("connection refused", request=httpx.Request("POST", URL))
    publisher = HttpFormPublisher(URL, hostname="scanner", client=_client(error=error))

    with caplog.at_level(logging.ERROR):
        publisher.publish(_outcome())

    assert any("connection error" in record.getMessage() for record in caplog.records)


def test_default_hostname_is_short(monkeypatch):
    monkeypatch.setattr(
        "packetcheck.app.publishing.http_publisher.socket.gethostname",
        lambda: "scanner01.example.com",
    )
    client = _client(httpx.Response(200, request=httpx.Request("POST", URL)))

    HttpFormPublisher(URL, client=client).publish(_outcome())

    assert client.post.call_args.kwargs["data"]["hostname"] == "scanner01"
