"""
Pytest configuration for datamart-ingest.

Provides fixtures for:
- The bundled schema and the reports most tests exercise
- Settings isolated from the caller's environment
- A fake HTTP session standing in for requests.Session
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

import pytest
import requests

from datamart import config
from datamart.config import Settings
from datamart.domain.models import ReportDefinition
from datamart.schema import registry
from datamart.schema.registry import BUNDLED_SCHEMA_PATH, Schema, load_schema_file

_ENV_VARS = (
    "DATAMART_BASE_URL",
    "DATAMART_SCHEMA_PATH",
    "HTTP_CONNECT_TIMEOUT",
    "HTTP_READ_TIMEOUT",
    "HTTP_RETRY_ATTEMPTS",
    "FETCH_CONCURRENCY",
    "DEMUX_MODE",
    "DUPLICATE_POLICY",
    "NULL_KEY_POLICY",
    "FAIL_FAST",
    "USER_AGENT",
    "LOG_LEVEL",
    "LOG_JSON",
)

TEST_BASE_URL = "https://datamart.test/services/v1.1/reports"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """
    Drop datamart env vars and cached singletons so each test sees defaults.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the tests.
    monkeypatch.chdir(tmp_path)
    config.get_settings.cache_clear()
    registry.get_schema.cache_clear()
    yield
    config.get_settings.cache_clear()
    registry.get_schema.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATAMART_BASE_URL=TEST_BASE_URL,
        HTTP_RETRY_ATTEMPTS=1,
        FETCH_CONCURRENCY=2,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture(scope="session")
def schema() -> Schema:
    return load_schema_file(BUNDLED_SCHEMA_PATH)


@pytest.fixture(scope="session")
def report_2466(schema: Schema) -> ReportDefinition:
    return schema.by_id(2466)


@pytest.fixture(scope="session")
def report_2480(schema: Schema) -> ReportDefinition:
    return schema.by_id(2480)


@pytest.fixture(scope="session")
def report_2481(schema: Schema) -> ReportDefinition:
    return schema.by_id(2481)


class FakeResponse:
    """Just enough of requests.Response for the client."""

    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        text: Optional[str] = None,
        url: str = TEST_BASE_URL,
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.text = text if text is not None else json.dumps(payload)

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)


Reply = Union[FakeResponse, BaseException]


class FakeSession:
    """
    Stand-in for requests.Session that replays queued replies.

    Replies are queued per URL (`route`) or globally (`queue`); an exception
    reply is raised from `get`.
    """

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.routes: Dict[str, List[Reply]] = {}
        self.pending: List[Reply] = []
        self.closed = False

    def queue(self, *replies: Reply) -> "FakeSession":
        self.pending.extend(replies)
        return self

    def route(self, url: str, *replies: Reply) -> "FakeSession":
        self.routes.setdefault(url, []).extend(replies)
        return self

    def get(self, url: str, params: Optional[Dict[str, str]] = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        replies = self.routes.get(url) or self.pending
        if not replies:
            raise AssertionError(f"Unexpected request to {url}")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True


def _envelope(
    section: Optional[str],
    results: Optional[List[Dict[str, Any]]],
    returned: Optional[int] = None,
    allowed: int = 10000,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a datamart response body."""
    body: Dict[str, Any] = {
        "reportSection": section,
        "reportSections": [section] if section else [],
        "stats": {
            "returnedRows:": len(results or []) if returned is None else returned,
            "userAllowedRows:": allowed,
        },
    }
    if results is not None:
        body["results"] = results
    if message is not None:
        body["message"] = message
    return body


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def envelope():
    """Factory for datamart response bodies."""
    return _envelope


@pytest.fixture
def respond():
    """Factory for fake HTTP responses: respond(body, status_code=200, text=None)."""
    return FakeResponse
