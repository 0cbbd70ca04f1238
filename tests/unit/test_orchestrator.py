from __future__ import annotations

from datetime import date
from typing import Any, ClassVar, Dict, List

import pytest
import requests

from datamart import orchestrator
from datamart.config import Settings
from datamart.errors import DuplicateKeyError, UnknownReportError, UnknownSectionError
from datamart.infrastructure.http_client import SectionPayload
from datamart.orchestrator import fetch_report, fetch_reports
from datamart.query.builder import DateRange, WireQuery

REPORT_DATE = "03/15/2024"
WHEN = date(2024, 3, 15)


def _summary_row() -> Dict[str, Any]:
    return {"report_date": REPORT_DATE, "total_head_count": "25,000"}


def _detail_row(grade: str) -> Dict[str, Any]:
    return {
        "report_date": REPORT_DATE,
        "class_description": "STEER",
        "source_description": "Domestic",
        "selling_basis_description": "LIVE FOB",
        "purchase_type_code": "Negotiated Cash",
        "grade_description": grade,
        "head_count": "100",
    }


def _regional_row(region: str) -> Dict[str, Any]:
    return {"report_date": REPORT_DATE, "Region": region, "Selling_Basis": "LIVE FOB", "Head_Count": "5"}


class _FakeClient:
    """Answers section queries from a display name -> rows (or exception) table."""

    instances: ClassVar[List["_FakeClient"]] = []

    def __init__(self, answers: Dict[str, Any] | None = None) -> None:
        self.answers = answers or {}
        self.queries: List[WireQuery] = []
        self.close_calls = 0
        _FakeClient.instances.append(self)

    def fetch(self, query: WireQuery) -> SectionPayload:
        self.queries.append(query)
        answer = self.answers[query.section]
        if isinstance(answer, BaseException):
            raise answer
        return SectionPayload(query=query, rows=list(answer), report_section=query.section)

    def close(self) -> None:
        self.close_calls += 1


def _lm_ct154_answers() -> Dict[str, Any]:
    return {
        "Summary": [_summary_row()],
        "Detail": [_detail_row("Choice"), _detail_row("Select")],
        "Regional": [_regional_row("Kansas"), _regional_row("Texas")],
    }


def test_fetch_report_maps_every_section(schema, test_settings: Settings) -> None:
    client = _FakeClient(_lm_ct154_answers())

    result = fetch_report(2481, when=WHEN, schema=schema, client=client, settings=test_settings)

    assert result.ok
    assert result.report_name == "lm_ct154"
    assert list(result.sections) == ["Summary", "Detail", "Regional"]
    assert [len(records) for records in result.records.values()] == [1, 2, 2]
    assert {q.q for q in client.queries} == {"report_date=03/15/2024"}
    assert client.close_calls == 0


def test_one_failing_section_does_not_affect_the_others(schema, test_settings: Settings) -> None:
    answers = _lm_ct154_answers()
    answers["Detail"] = requests.ConnectionError("reset by peer")
    client = _FakeClient(answers)

    result = fetch_report("lm_ct154", when=WHEN, schema=schema, client=client, settings=test_settings)

    assert not result.ok
    failed = result.failed["Detail"]
    assert failed.error_type == "ConnectionError"
    assert failed.retryable is True
    assert failed.records == []
    assert set(result.records) == {"Summary", "Regional"}


def test_mapping_failure_is_recorded_per_section(schema, test_settings: Settings) -> None:
    answers = _lm_ct154_answers()
    answers["Detail"] = [_detail_row("Choice"), _detail_row("Choice")]
    client = _FakeClient(answers)

    result = fetch_report(2481, when=WHEN, schema=schema, client=client, settings=test_settings)

    failed = result.failed["Detail"]
    assert failed.error_type == "DuplicateKeyError"
    assert failed.retryable is False
    assert failed.rows == 2
    assert len(result.records["Regional"]) == 2


def test_duplicate_policy_comes_from_settings(schema) -> None:
    answers = _lm_ct154_answers()
    answers["Detail"] = [_detail_row("Choice"), _detail_row("Choice")]
    settings = Settings(DUPLICATE_POLICY="keep_first", FETCH_CONCURRENCY=1)

    result = fetch_report(2481, when=WHEN, schema=schema, client=_FakeClient(answers), settings=settings)

    assert result.ok
    assert len(result.records["Detail"]) == 1


def test_fail_fast_reraises(schema) -> None:
    answers = _lm_ct154_answers()
    answers["Detail"] = [_detail_row("Choice"), _detail_row("Choice")]
    settings = Settings(FAIL_FAST=True)

    with pytest.raises(DuplicateKeyError):
        fetch_report(2481, when=WHEN, schema=schema, client=_FakeClient(answers), settings=settings)


def test_section_subset(schema, test_settings: Settings) -> None:
    client = _FakeClient({"A. Packer Owned Slaughter": [{"report_date": REPORT_DATE, "source_desc": "Domestic"}]})

    result = fetch_report(
        2480,
        when=WHEN,
        sections=["packer_owned_slaughter"],
        schema=schema,
        client=client,
        settings=test_settings,
    )

    assert result.ok
    assert list(result.records) == ["packer_owned_slaughter"]
    assert [q.section for q in client.queries] == ["A. Packer Owned Slaughter"]


def test_date_range_is_sent_to_every_section(schema, test_settings: Settings) -> None:
    client = _FakeClient(_lm_ct154_answers())

    fetch_report(
        2481,
        when=DateRange("2024-03-01", WHEN),
        schema=schema,
        client=client,
        settings=test_settings,
    )

    assert {q.q for q in client.queries} == {"report_date=03/01/2024:03/15/2024"}


def test_invalid_requests_fail_before_fetching(schema, test_settings: Settings) -> None:
    client = _FakeClient()

    with pytest.raises(UnknownReportError):
        fetch_report(9999, when=WHEN, schema=schema, client=client, settings=test_settings)
    with pytest.raises(UnknownSectionError):
        fetch_report(2481, when=WHEN, sections=["detail"], schema=schema, client=client, settings=test_settings)

    assert client.queries == []


def test_owned_client_is_closed(monkeypatch, schema, test_settings: Settings) -> None:
    _FakeClient.instances.clear()
    monkeypatch.setattr(orchestrator, "DatamartClient", lambda: _FakeClient(_lm_ct154_answers()))

    fetch_report(2481, when=WHEN, schema=schema, settings=test_settings)

    assert len(_FakeClient.instances) == 1
    assert _FakeClient.instances[0].close_calls == 1


def test_fetch_reports_shares_one_client(monkeypatch, schema, test_settings: Settings) -> None:
    _FakeClient.instances.clear()
    answers = _lm_ct154_answers()
    answers["Summary"] = [{"report_date": REPORT_DATE, "previous_day_head_count": "1"}]
    monkeypatch.setattr(orchestrator, "DatamartClient", lambda: _FakeClient(answers))

    results = fetch_reports([2466, 2481], when=WHEN, schema=schema, settings=test_settings)

    assert [r.report_id for r in results] == [2466, 2481]
    assert len(_FakeClient.instances) == 1
    assert _FakeClient.instances[0].close_calls == 1


def test_result_to_dict(schema, test_settings: Settings) -> None:
    client = _FakeClient(_lm_ct154_answers())

    payload = fetch_report(2481, when=WHEN, schema=schema, client=client, settings=test_settings).to_dict()

    assert payload["report_id"] == 2481
    summary = payload["sections"][0]
    assert summary["section"] == "Summary"
    assert summary["q"] == "report_date=03/15/2024"
    assert summary["data"] == [
        {
            "report_date": REPORT_DATE,
            "total_head_count": "25,000",
            "total_head_count_1": None,
            "total_head_count_2": None,
            "total_head_count_neg_grid": None,
        }
    ]
