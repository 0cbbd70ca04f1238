"""
Schema registry: validation and indexing of report definitions.

Raw report entries (as read from `datamart.toml` or supplied directly) are
checked for internal consistency, converted into frozen `ReportDefinition`
objects, and indexed by numeric ID and by short name. The resulting `Schema`
is never mutated after construction.

Usage:
    from datamart.schema.registry import load_schema_file

    schema = load_schema_file("datamart/schema/datamart.toml")
    report = schema.by_id(2466)
    section = report.section("Summary")
"""
from __future__ import annotations

import re
import tomllib
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from datamart.config import get_settings
from datamart.domain.models import FieldSet, ReportDefinition, SectionDefinition
from datamart.errors import SchemaValidationError, UnknownReportError

BUNDLED_SCHEMA_PATH = Path(__file__).with_name("datamart.toml")

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

RawDefinitions = Union[Mapping[Any, Mapping[str, Any]], Iterable[Tuple[Any, Mapping[str, Any]]]]


class RawSection(BaseModel):
    """Shape of one `[<id>.sections."<name>"]` table."""

    alias: Optional[StrictStr] = None
    independent: List[StrictStr]
    fields: List[StrictStr] = []

    model_config = ConfigDict(extra="forbid")


class RawReport(BaseModel):
    """Shape of one `[<id>]` table."""

    name: StrictStr
    description: StrictStr = ""
    independent: StrictStr
    sections: Dict[str, RawSection]

    model_config = ConfigDict(extra="forbid")


class Schema:
    """
    Read-only index of report definitions by ID and by name.

    Safe to share between threads: both indexes are built in __init__ and only
    exposed through read-only views.
    """

    __slots__ = ("_by_id", "_by_name")

    def __init__(self, reports: Iterable[ReportDefinition]) -> None:
        reports = tuple(reports)
        self._by_id: Mapping[int, ReportDefinition] = MappingProxyType({r.id: r for r in reports})
        self._by_name: Mapping[str, ReportDefinition] = MappingProxyType({r.name: r for r in reports})

    def by_id(self, report_id: int) -> ReportDefinition:
        try:
            return self._by_id[report_id]
        except (KeyError, TypeError):
            raise UnknownReportError(report_id) from None

    def by_name(self, name: str) -> ReportDefinition:
        try:
            return self._by_name[name]
        except (KeyError, TypeError):
            raise UnknownReportError(name) from None

    def get(self, ref: Union[int, str]) -> ReportDefinition:
        """Resolve an int ID, a numeric string ID, or a short name."""
        if isinstance(ref, int) and not isinstance(ref, bool):
            return self.by_id(ref)
        if isinstance(ref, str) and ref.isdecimal() and ref.isascii():
            return self.by_id(int(ref))
        return self.by_name(ref)

    @property
    def ids(self) -> Tuple[int, ...]:
        return tuple(self._by_id)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._by_name)

    def __iter__(self) -> Iterator[ReportDefinition]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, ref: object) -> bool:
        try:
            self.get(ref)  # type: ignore[arg-type]
        except UnknownReportError:
            return False
        return True

    def __repr__(self) -> str:
        return f"Schema(reports={list(self._by_id)})"


def _parse_report_id(raw_id: Any) -> int:
    if isinstance(raw_id, bool):
        raise SchemaValidationError(f"Report ID must be a positive integer, got {raw_id!r}.", report_id=raw_id)
    if isinstance(raw_id, int):
        report_id = raw_id
    elif isinstance(raw_id, str) and raw_id.isascii() and raw_id.isdecimal():
        report_id = int(raw_id)
    else:
        raise SchemaValidationError(f"Report ID must be a positive integer, got {raw_id!r}.", report_id=raw_id)
    if report_id <= 0:
        raise SchemaValidationError(f"Report ID must be a positive integer, got {raw_id!r}.", report_id=raw_id)
    return report_id


def _parse_entry(report_id: int, entry: Any) -> RawReport:
    try:
        return RawReport.model_validate(entry)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = [str(part) for part in first.get("loc", ())]
        section = loc[1] if len(loc) > 1 and loc[0] == "sections" else None
        field = loc[-1] if loc else None
        raise SchemaValidationError(
            f"Malformed report entry at {'.'.join(loc) or '<root>'}: {first.get('msg')}",
            report_id=report_id,
            section=section,
            field=field,
        ) from exc


def _check_names(report_id: int, section: Optional[str], names: Iterable[str], kind: str) -> None:
    seen = set()
    for name in names:
        if name == "":
            raise SchemaValidationError(f"Empty {kind} field name.", report_id=report_id, section=section, field=name)
        if name in seen:
            raise SchemaValidationError(
                f"Field listed twice among {kind} fields.", report_id=report_id, section=section, field=name
            )
        seen.add(name)


def _build_section(report_id: int, display_name: str, raw: RawSection) -> SectionDefinition:
    _check_names(report_id, display_name, raw.independent, "independent")
    _check_names(report_id, display_name, raw.fields, "dependent")

    if not raw.independent:
        raise SchemaValidationError("Section declares no independent fields.", report_id=report_id, section=display_name)

    overlap = [name for name in raw.independent if name in set(raw.fields)]
    if overlap:
        raise SchemaValidationError(
            "Field is declared both independent and dependent.",
            report_id=report_id,
            section=display_name,
            field=overlap[0],
        )

    name = raw.alias if raw.alias is not None else display_name
    if _IDENTIFIER.fullmatch(name) is None:
        what = "Alias" if raw.alias is not None else "Section name without an alias"
        raise SchemaValidationError(
            f"{what} {name!r} is not a valid identifier.", report_id=report_id, section=display_name
        )

    return SectionDefinition(
        display_name=display_name,
        alias=raw.alias,
        field_set=FieldSet(independent=tuple(raw.independent), dependent=tuple(raw.fields)),
    )


def _build_report(report_id: int, raw: RawReport) -> ReportDefinition:
    if raw.independent == "":
        raise SchemaValidationError("Empty report-level independent field.", report_id=report_id, field="")
    if not raw.sections:
        raise SchemaValidationError("Report declares no sections.", report_id=report_id)

    sections: List[SectionDefinition] = []
    aliases: Dict[str, str] = {}
    for display_name, raw_section in raw.sections.items():
        section = _build_section(report_id, display_name, raw_section)
        if section.name in aliases:
            raise SchemaValidationError(
                f"Alias {section.name!r} already used by section {aliases[section.name]!r}.",
                report_id=report_id,
                section=display_name,
            )
        aliases[section.name] = display_name
        sections.append(section)

    return ReportDefinition(
        id=report_id,
        name=raw.name,
        description=raw.description,
        default_independent=raw.independent,
        section_list=tuple(sections),
    )


class SchemaRegistry:
    """
    Loads raw report entries into a validated, immutable `Schema`.

    Validation fails fast: the first violation raises SchemaValidationError
    naming the report, section and field that triggered it.
    """

    @staticmethod
    def load(definitions: RawDefinitions) -> Schema:
        items = definitions.items() if isinstance(definitions, Mapping) else definitions

        reports: List[ReportDefinition] = []
        seen_ids: set[int] = set()
        seen_names: Dict[str, int] = {}
        for raw_id, entry in items:
            report_id = _parse_report_id(raw_id)
            raw = _parse_entry(report_id, entry)
            if raw.name == "":
                raise SchemaValidationError("Empty report name.", report_id=report_id)
            if report_id in seen_ids:
                raise SchemaValidationError("Duplicate report ID.", report_id=report_id)
            if raw.name in seen_names:
                raise SchemaValidationError(
                    f"Report name {raw.name!r} already used by report {seen_names[raw.name]}.",
                    report_id=report_id,
                )
            seen_ids.add(report_id)
            seen_names[raw.name] = report_id
            reports.append(_build_report(report_id, raw))

        return Schema(reports)


load_schema = SchemaRegistry.load


def load_schema_file(path: Union[str, Path]) -> Schema:
    """Read a TOML schema document whose top-level tables are report IDs."""
    path = Path(path)
    try:
        with path.open("rb") as f:
            document = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise SchemaValidationError(f"{path} is not valid TOML: {exc}") from exc
    return load_schema(document)


def load_default_schema() -> Schema:
    """Load the schema named by settings, or the bundled one."""
    settings = get_settings()
    return load_schema_file(settings.schema_path or BUNDLED_SCHEMA_PATH)


@lru_cache(maxsize=1)
def get_schema() -> Schema:
    """
    Process-wide schema, loaded once on first use.
    """
    return load_default_schema()


__all__ = [
    "BUNDLED_SCHEMA_PATH",
    "RawReport",
    "RawSection",
    "Schema",
    "SchemaRegistry",
    "load_schema",
    "load_schema_file",
    "load_default_schema",
    "get_schema",
]
