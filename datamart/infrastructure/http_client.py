"""
HTTP transport for the USDA data-mart.

Issues one GET per report section and validates the JSON envelope the server
wraps rows in. Transient failures (connection errors, timeouts, 5xx, 429) are
retried with exponential backoff using tenacity; everything else propagates
unchanged so callers can classify it with `datamart.errors.is_retryable`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field, ValidationError
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from datamart.config import get_settings
from datamart.errors import ResponseFormatError, is_retryable
from datamart.query.builder import WireQuery
from datamart.utils.logging import get_logger

log = get_logger(__name__)

# Report 2451 with a fixed old date answers quickly; used to probe availability.
HEALTH_CHECK_REPORT = 2451
HEALTH_CHECK_QUERY = "report_date=01/01/2020"
HEALTH_CHECK_TIMEOUT = 3.0

RETURNED_ROWS_STAT = "returnedRows:"
ALLOWED_ROWS_STAT = "userAllowedRows:"


class DatamartResponse(BaseModel):
    """
    JSON envelope returned for a section request.
    """

    report_section: Optional[str] = Field(None, alias="reportSection")
    report_sections: List[str] = Field(default_factory=list, alias="reportSections")
    stats: Dict[str, Any] = Field(default_factory=dict)
    results: Optional[List[Dict[str, Any]]] = None
    message: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def truncated(self) -> bool:
        """True when the server stopped at its row cap (it reports cap + 1)."""
        returned = self.stats.get(RETURNED_ROWS_STAT)
        allowed = self.stats.get(ALLOWED_ROWS_STAT)
        if not isinstance(returned, int) or not isinstance(allowed, int):
            return False
        return returned == allowed + 1


@dataclass
class SectionPayload:
    """Raw rows for one section request plus what the envelope said about them."""

    query: WireQuery
    rows: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False
    message: Optional[str] = None
    report_section: Optional[str] = None


class DatamartClient:
    """
    Thin requests-based client for the data-mart report endpoints.

    Safe to share between threads for concurrent GETs; the underlying
    requests.Session pools connections.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        connect_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_wait: Optional[wait_base] = None,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.datamart_base_url).rstrip("/")
        self.connect_timeout = connect_timeout or settings.http_connect_timeout
        self.read_timeout = read_timeout or settings.http_read_timeout
        self.retry_attempts = retry_attempts or settings.http_retry_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent or settings.user_agent

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)

    def _get_once(self, url: str, params: Dict[str, str], timeout: Any) -> requests.Response:
        response = self.session.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        return response

    def _get(self, url: str, params: Dict[str, str]) -> requests.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(is_retryable),
            reraise=True,
            before_sleep=lambda state: log.warning(
                f"[HTTP RETRY] attempt {state.attempt_number} failed for {url}",
                extra={"url": url, "attempt": state.attempt_number},
            ),
        )
        return retrying(self._get_once, url, params, self.timeout)

    @staticmethod
    def _parse(response: requests.Response, url: str) -> DatamartResponse:
        try:
            document = response.json()
        except ValueError:
            raise ResponseFormatError(
                f"Response from datamart server is not valid JSON. Target url: {url}"
            ) from None
        try:
            return DatamartResponse.model_validate(document)
        except ValidationError as exc:
            raise ResponseFormatError(
                f"Response from datamart server has an unexpected structure. Target url: {url}"
            ) from exc

    def fetch(self, query: WireQuery) -> SectionPayload:
        """
        Fetch the rows for one section query.

        Raises
        ------
        requests.RequestException
            Transport failure after retries are exhausted.
        ResponseFormatError
            The server answered with something other than the expected envelope.
        """
        url = query.url(self.base_url)
        log.debug("[HTTP GET]", extra={"url": url, "q": query.q})
        envelope = self._parse(self._get(url, query.params()), url)

        if envelope.truncated:
            log.warning(
                "Datamart response row count is at the server limit; more data may be available.",
                extra={"url": url, "q": query.q, "stats": envelope.stats},
            )
        if envelope.results is None:
            log.warning(
                "Datamart response has no results; treating the section as empty.",
                extra={"url": url, "q": query.q},
            )
        if envelope.message:
            log.info(f"Message from datamart: {envelope.message}", extra={"url": url})

        return SectionPayload(
            query=query,
            rows=envelope.results or [],
            truncated=envelope.truncated,
            message=envelope.message,
            report_section=envelope.report_section,
        )

    def check(self) -> None:
        """
        Probe the data-mart with a query expected to return quickly.

        The data-mart needs long read timeouts for real queries; this lets
        callers find out it is down without waiting for one.
        """
        url = f"{self.base_url}/{HEALTH_CHECK_REPORT}"
        response = self.session.get(
            url, params={"q": HEALTH_CHECK_QUERY}, timeout=HEALTH_CHECK_TIMEOUT
        )
        response.raise_for_status()
        self._parse(response, url)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "DatamartClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["DatamartClient", "DatamartResponse", "SectionPayload"]
