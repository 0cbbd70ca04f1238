"""
Translate a report request into the data-mart's `q` query parameter.

The data-mart accepts equality clauses `field=value` joined by `;`. The first
clause is always the section's date axis, rendered MM/DD/YYYY (or a
`start:end` range of two such dates); the rest are literal text matches,
case-sensitive on the field name. Text values may not contain `;` or `=`,
since the data-mart has no escape for either.

Usage:
    from datetime import date
    from datamart.query.builder import build

    query = build(report, "Summary", [("report_date", date(2024, 3, 15))])
    query.q           # 'report_date=03/15/2024'
    query.url(base)   # '{base}/2466/Summary'
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from datamart.domain.models import ReportDefinition
from datamart.errors import QueryBuildError, UnknownFieldError
from datamart.query.dates import DateLike, coerce_date, to_wire

CLAUSE_SEPARATOR = ";"
RANGE_SEPARATOR = ":"

Filters = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window for the date axis."""

    start: DateLike
    end: DateLike

    def to_wire(self) -> str:
        start, end = coerce_date(self.start), coerce_date(self.end)
        if start > end:
            raise QueryBuildError(f"Date range starts after it ends: {start} > {end}.")
        return f"{to_wire(start)}{RANGE_SEPARATOR}{to_wire(end)}"


@dataclass(frozen=True)
class WireQuery:
    """
    A fully rendered request for one report section.

    `section` is the display name used in the URL path, or None for a
    report-level request.
    """

    report_id: int
    section: Optional[str]
    clauses: Tuple[Tuple[str, str], ...]

    @property
    def q(self) -> str:
        return CLAUSE_SEPARATOR.join(f"{field}={value}" for field, value in self.clauses)

    def params(self) -> Dict[str, str]:
        return {"q": self.q} if self.clauses else {}

    def url(self, base_url: str) -> str:
        """Endpoint path for this query, without the query string."""
        url = f"{base_url.rstrip('/')}/{self.report_id}"
        if self.section is not None:
            url = f"{url}/{quote(self.section, safe='')}"
        return url

    def __str__(self) -> str:
        return self.q


def _render_date(value: Any) -> str:
    if isinstance(value, DateRange):
        return value.to_wire()
    return to_wire(coerce_date(value))


def _render_text(name: str, value: Any) -> str:
    if value is None:
        raise QueryBuildError(f"Field {name!r} has no value.")
    if isinstance(value, date):
        return to_wire(value)
    text = value if isinstance(value, str) else str(value)
    if CLAUSE_SEPARATOR in text or "=" in text:
        raise QueryBuildError(
            f"Value for {name!r} may not contain {CLAUSE_SEPARATOR!r} or '=': {text!r}."
        )
    return text


def _ordered_pairs(filters: Filters, independent: Tuple[str, ...]) -> List[Tuple[str, Any]]:
    if isinstance(filters, Mapping):
        # No explicit order: declared order first, unknown names after so they are reported.
        pairs = [(name, filters[name]) for name in independent if name in filters]
        pairs.extend((name, value) for name, value in filters.items() if name not in independent)
        return pairs
    return [(name, value) for name, value in filters]


def _build_clauses(
    date_field: str,
    allowed: Tuple[str, ...],
    filters: Filters,
    section_label: str,
) -> Tuple[Tuple[str, str], ...]:
    pairs = _ordered_pairs(filters, allowed)
    if not pairs:
        return ()

    seen = set()
    for name, _ in pairs:
        if name not in allowed:
            raise UnknownFieldError(name, section_label, allowed)
        if name in seen:
            raise QueryBuildError(f"Field {name!r} is filtered more than once.")
        seen.add(name)

    if date_field not in seen:
        raise QueryBuildError(
            f"Filters for {section_label!r} must include the date field {date_field!r}."
        )

    clauses: List[Tuple[str, str]] = []
    for name, value in pairs:
        if name == date_field:
            clauses.insert(0, (name, _render_date(value)))
        else:
            clauses.append((name, _render_text(name, value)))
    return tuple(clauses)


def build(
    report: ReportDefinition,
    section_alias: Optional[str],
    filters: Filters = (),
) -> WireQuery:
    """
    Build the wire query for a report section.

    Parameters
    ----------
    report : ReportDefinition
        Owning report.
    section_alias : str | None
        Canonical section name. None builds a report-level query on the
        report's default independent field.
    filters : sequence of (field, value) pairs, or a mapping
        Independent-field values. The date field may be a date, MM/DD/YYYY or
        ISO text, or a DateRange. A mapping is ordered by declaration.

    Raises
    ------
    UnknownSectionError, UnknownFieldError, DateFormatError, QueryBuildError
    """
    if section_alias is None:
        date_field = report.default_independent
        clauses = _build_clauses(date_field, (date_field,), filters, report.name)
        return WireQuery(report_id=report.id, section=None, clauses=clauses)

    section = report.section(section_alias)
    clauses = _build_clauses(section.date_field, section.independent, filters, section.name)
    return WireQuery(report_id=report.id, section=section.display_name, clauses=clauses)


def build_for_date(
    report: ReportDefinition,
    section_alias: Optional[str],
    when: Union[DateLike, DateRange],
    extra: Iterable[Tuple[str, Any]] = (),
) -> WireQuery:
    """Shortcut for the common one-day (or date window) request."""
    if section_alias is None:
        date_field = report.default_independent
    else:
        date_field = report.section(section_alias).date_field
    return build(report, section_alias, [(date_field, when), *extra])


def since(start: DateLike, today: Optional[date] = None) -> DateRange:
    """Window from `start` through today, inclusive."""
    return DateRange(start=start, end=today or date.today())


__all__ = [
    "DateRange",
    "WireQuery",
    "Filters",
    "build",
    "build_for_date",
    "since",
]
