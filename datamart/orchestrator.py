"""
Fetch orchestrator: schema -> queries -> HTTP -> demux -> records.

Issues one request per report section over a bounded thread pool, then pipes
the rows through the demultiplexer and record mapper. A failure in one section
is recorded on that section's result and does not affect the others, unless
fail-fast is requested.

Usage (example from CLI):
    from datetime import date
    from datamart.orchestrator import fetch_report

    result = fetch_report("lm_ct154", when=date(2024, 3, 15))
    for record in result.records["Detail"]:
        print(record.key, record.values)
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from datamart.config import Settings, get_settings
from datamart.domain.models import Record, ReportDefinition
from datamart.errors import DatamartError, is_retryable
from datamart.infrastructure.http_client import DatamartClient, SectionPayload
from datamart.query.builder import DateRange, WireQuery, build, build_for_date
from datamart.query.dates import DateLike
from datamart.response.demux import DemuxMode, demux
from datamart.response.mapper import map_rows
from datamart.schema.registry import Schema, get_schema
from datamart.utils.logging import get_logger

log = get_logger(__name__)


def _round_float(value: float, decimals: int = 3) -> float:
    return round(value, decimals)


@dataclass
class SectionResult:
    """Outcome of fetching and mapping one section."""

    section: str
    query: WireQuery
    records: List[Record] = field(default_factory=list)
    rows: int = 0
    truncated: bool = False
    duration_seconds: float = 0.0
    error: Optional[str] = None
    error_type: Optional[str] = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self, include_records: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "section": self.section,
            "url_section": self.query.section,
            "q": self.query.q,
            "rows": self.rows,
            "records": len(self.records),
            "truncated": self.truncated,
            "duration_seconds": _round_float(self.duration_seconds),
            "error": self.error,
            "error_type": self.error_type,
            "retryable": self.retryable,
        }
        if include_records:
            payload["data"] = [record.as_dict() for record in self.records]
        return payload


@dataclass
class ReportResult:
    """Per-section outcomes for one report fetch."""

    report_id: int
    report_name: str
    sections: Dict[str, SectionResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.sections.values())

    @property
    def records(self) -> Dict[str, List[Record]]:
        """Records of the sections that succeeded, by alias."""
        return {name: result.records for name, result in self.sections.items() if result.ok}

    @property
    def failed(self) -> Dict[str, SectionResult]:
        return {name: result for name, result in self.sections.items() if not result.ok}

    def to_dict(self, include_records: bool = True) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "report_name": self.report_name,
            "sections": [r.to_dict(include_records=include_records) for r in self.sections.values()],
        }


def _record_failure(result: SectionResult, exc: BaseException, fail_fast: bool) -> None:
    result.error = str(exc)
    result.error_type = type(exc).__name__
    result.retryable = is_retryable(exc)
    log.error(
        f"[SECTION FAILED] {result.section}",
        extra={
            "section": result.section,
            "error_type": result.error_type,
            "retryable": result.retryable,
        },
    )
    if fail_fast:
        raise exc


def _timed_fetch(client: DatamartClient, query: WireQuery) -> Tuple[SectionPayload, float]:
    started = time.perf_counter()
    payload = client.fetch(query)
    return payload, time.perf_counter() - started


def _select_sections(report: ReportDefinition, sections: Optional[Iterable[str]]) -> List[str]:
    if sections is None:
        return list(report.aliases)
    selected = list(sections)
    for alias in selected:
        report.section(alias)
    return selected


def _build_queries(
    report: ReportDefinition,
    aliases: List[str],
    when: Union[DateLike, DateRange, None],
) -> Dict[str, WireQuery]:
    if when is None:
        return {alias: build(report, alias) for alias in aliases}
    return {alias: build_for_date(report, alias, when) for alias in aliases}


def fetch_report(
    report_ref: Union[int, str],
    when: Union[DateLike, DateRange, None] = None,
    sections: Optional[Iterable[str]] = None,
    schema: Optional[Schema] = None,
    client: Optional[DatamartClient] = None,
    settings: Optional[Settings] = None,
    demux_mode: Union[DemuxMode, str, None] = None,
) -> ReportResult:
    """
    Fetch, demultiplex and map one report.

    Parameters
    ----------
    report_ref : int | str
        Report ID or short name.
    when : date | str | DateRange | None
        Date axis filter applied to every section. None fetches whatever the
        data-mart returns by default.
    sections : iterable[str] | None
        Section aliases to fetch. Defaults to all declared sections.
    schema, client, settings : optional
        Collaborators; default to the process-wide instances.
    demux_mode : DemuxMode | str | None
        Overrides settings.demux_mode.

    Returns
    -------
    ReportResult
        One SectionResult per requested section.

    Raises
    ------
    UnknownReportError, UnknownSectionError, QueryBuildError, DateFormatError
        The request itself is invalid; nothing is fetched.
    """
    settings = settings or get_settings()
    schema = schema or get_schema()
    report = schema.get(report_ref)
    aliases = _select_sections(report, sections)
    queries = _build_queries(report, aliases, when)
    mode = DemuxMode(demux_mode or settings.demux_mode)

    result = ReportResult(report_id=report.id, report_name=report.name)
    for alias in aliases:
        result.sections[alias] = SectionResult(section=alias, query=queries[alias])

    owns_client = client is None
    client = client or DatamartClient()

    log.info(
        f"[FETCH START] {report.id} {report.name}",
        extra={"report_id": report.id, "sections": aliases, "concurrency": settings.fetch_concurrency},
    )

    payloads: Dict[str, SectionPayload] = {}
    overall_started = time.perf_counter()
    try:
        workers = max(1, min(settings.fetch_concurrency, len(aliases)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="datamart-fetch") as pool:
            futures = {alias: pool.submit(_timed_fetch, client, queries[alias]) for alias in aliases}
            for alias, future in futures.items():
                try:
                    payloads[alias], result.sections[alias].duration_seconds = future.result()
                except Exception as exc:  # noqa: BLE001 - recorded per section, re-raised in fail-fast mode
                    if settings.fail_fast:
                        for pending in futures.values():
                            pending.cancel()
                    _record_failure(result.sections[alias], exc, settings.fail_fast)
    finally:
        if owns_client:
            client.close()
    raw_payload = {report.section(alias).display_name: payloads[alias].rows for alias in payloads}
    try:
        by_alias = demux(report, raw_payload, mode, sections=list(payloads))
    except DatamartError as exc:
        for alias in payloads:
            _record_failure(result.sections[alias], exc, settings.fail_fast)
        by_alias = {}

    for alias, rows in by_alias.items():
        section_result = result.sections[alias]
        payload = payloads[alias]
        section_result.rows = len(rows)
        section_result.truncated = payload.truncated
        if payload.report_section and payload.report_section != payload.query.section:
            log.warning(
                f"[SECTION MISMATCH] requested {payload.query.section!r}, server answered {payload.report_section!r}",
                extra={"section": alias},
            )
        started = time.perf_counter()
        try:
            section_result.records = map_rows(
                report,
                alias,
                rows,
                duplicate_policy=settings.duplicate_policy,
                null_key_policy=settings.null_key_policy,
            )
        except DatamartError as exc:
            _record_failure(section_result, exc, settings.fail_fast)
        section_result.duration_seconds += time.perf_counter() - started
        if section_result.ok:
            log.info(
                f"[SECTION SUCCESS] {alias}",
                extra={"section": alias, "rows": section_result.rows, "records": len(section_result.records)},
            )

    log.info(
        f"[FETCH COMPLETE] {report.id} {report.name}",
        extra={
            "report_id": report.id,
            "ok": result.ok,
            "failed_sections": list(result.failed),
            "duration": _round_float(time.perf_counter() - overall_started),
        },
    )
    return result


def fetch_reports(
    report_refs: Iterable[Union[int, str]],
    when: Union[DateLike, DateRange, None] = None,
    **kwargs: Any,
) -> List[ReportResult]:
    """Fetch several reports one after another, sharing one client."""
    owns_client = "client" not in kwargs
    if owns_client:
        kwargs["client"] = DatamartClient()
    try:
        return [fetch_report(ref, when=when, **kwargs) for ref in report_refs]
    finally:
        if owns_client:
            kwargs["client"].close()


__all__ = [
    "SectionResult",
    "ReportResult",
    "fetch_report",
    "fetch_reports",
]
