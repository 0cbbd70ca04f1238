"""
Split a multi-section payload into per-section row sets keyed by alias.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from datamart.domain.models import ReportDefinition
from datamart.errors import MissingSectionError, UnknownSectionError

RawRow = Mapping[str, Any]
RawPayload = Mapping[str, Sequence[RawRow]]


class DemuxMode(str, Enum):
    """How to treat payload sections that do not line up with the schema."""

    STRICT = "strict"    # unknown or missing sections are errors
    LENIENT = "lenient"  # unknown sections dropped, missing ones tolerated


def demux(
    report: ReportDefinition,
    raw_payload: RawPayload,
    mode: Union[DemuxMode, str] = DemuxMode.STRICT,
    sections: Optional[Iterable[str]] = None,
) -> Dict[str, List[RawRow]]:
    """
    Re-key a payload from section display names to section aliases.

    Display names are matched exactly. The result follows the report's section
    declaration order; rows are passed through untouched.

    `sections` narrows the declared sections the payload is expected to carry
    (by alias) when only some of them were requested.
    """
    mode = DemuxMode(mode)
    strict = mode is DemuxMode.STRICT
    if sections is None:
        expected = report.section_list
    else:
        wanted = {report.section(alias).name for alias in sections}
        expected = tuple(s for s in report.section_list if s.name in wanted)
    expected_names = {section.display_name for section in expected}

    for display_name in raw_payload:
        if display_name not in expected_names and strict:
            raise UnknownSectionError(display_name, report_id=report.id)

    result: Dict[str, List[RawRow]] = {}
    for section in expected:
        if section.display_name not in raw_payload:
            if strict:
                raise MissingSectionError(section.display_name, report_id=report.id)
            continue
        result[section.name] = list(raw_payload[section.display_name])
    return result


__all__ = ["DemuxMode", "RawRow", "RawPayload", "demux"]
