"""
Map a section's raw rows into typed `Record` objects.

Rows are processed in the order delivered: both duplicate detection and the
row indices reported in errors depend on it. The set of seen key tuples lives
only for the duration of one call.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from datamart.domain.models import Record, ReportDefinition, SectionDefinition
from datamart.errors import DateFormatError, DuplicateKeyError, FieldMappingError
from datamart.query.dates import from_wire
from datamart.response.demux import RawRow


class DuplicatePolicy(str, Enum):
    """What to do when two rows share a key tuple."""

    STRICT = "strict"          # fail the whole section
    KEEP_FIRST = "keep_first"  # ignore later repeats
    KEEP_LAST = "keep_last"    # later repeats replace the earlier record in place


class NullKeyPolicy(str, Enum):
    """What to do with a row whose independent field is present but null."""

    ERROR = "error"
    SKIP = "skip"


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def _extract_key(
    section: SectionDefinition,
    row: RawRow,
    row_index: int,
    null_key_policy: NullKeyPolicy,
) -> Optional[Tuple[str, ...]]:
    """Key tuple for the row, or None when the row is to be skipped."""
    key: List[str] = []
    for field in section.independent:
        if field not in row:
            raise FieldMappingError(field, row_index, section=section.name)
        value = row[field]
        if value is None:
            if null_key_policy is NullKeyPolicy.SKIP:
                return None
            raise FieldMappingError(field, row_index, section=section.name, reason="null")
        key.append(_text(value))
    return tuple(key)


def _extract_values(section: SectionDefinition, row: RawRow) -> Dict[str, Optional[str]]:
    values: Dict[str, Optional[str]] = {}
    for field in section.dependent:
        value = row.get(field)
        values[field] = None if value is None else _text(value)
    return values


def map_rows(
    report: ReportDefinition,
    section: Union[SectionDefinition, str],
    rows: Sequence[RawRow],
    duplicate_policy: Union[DuplicatePolicy, str] = DuplicatePolicy.STRICT,
    null_key_policy: Union[NullKeyPolicy, str] = NullKeyPolicy.ERROR,
) -> List[Record]:
    """
    Turn raw rows into Records, enforcing key-tuple uniqueness.

    Parameters
    ----------
    report : ReportDefinition
        Owning report.
    section : SectionDefinition | str
        The section, or its alias.
    rows : sequence of mappings
        Raw rows in delivered order.
    duplicate_policy : DuplicatePolicy
        STRICT raises DuplicateKeyError on the first repeated key.
    null_key_policy : NullKeyPolicy
        ERROR raises FieldMappingError for a null independent value; SKIP drops
        the row.

    Raises
    ------
    FieldMappingError
        A row lacks an independent field.
    DateFormatError
        The date axis value is not MM/DD/YYYY.
    DuplicateKeyError
        Two rows share a key tuple under the STRICT policy.
    """
    if isinstance(section, str):
        section = report.section(section)
    duplicate_policy = DuplicatePolicy(duplicate_policy)
    null_key_policy = NullKeyPolicy(null_key_policy)

    by_key: Dict[Tuple[str, ...], Record] = {}
    for row_index, row in enumerate(rows):
        key = _extract_key(section, row, row_index, null_key_policy)
        if key is None:
            continue

        try:
            report_date = from_wire(key[0])
        except DateFormatError as exc:
            raise DateFormatError(
                f"Row {row_index} in section {section.name!r}, field {section.date_field!r}: {exc}"
            ) from None

        previous = by_key.get(key)
        if previous is not None:
            if duplicate_policy is DuplicatePolicy.STRICT:
                raise DuplicateKeyError(key, previous.row_index, row_index, section=section.name)
            if duplicate_policy is DuplicatePolicy.KEEP_FIRST:
                continue

        by_key[key] = Record(
            report_id=report.id,
            section_name=section.name,
            key_fields=section.independent,
            key=key,
            values=_extract_values(section, row),
            report_date=report_date,
            row_index=row_index,
        )

    return list(by_key.values())


__all__ = ["DuplicatePolicy", "NullKeyPolicy", "map_rows"]
