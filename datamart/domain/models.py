"""
Domain models for the datamart ingestion engine.

Report and section definitions are built once when the schema is loaded and are
frozen afterwards, so a loaded schema can be shared by any number of threads
without locking. `Record` is the typed row handed back to callers after a
section's raw rows have been mapped.
"""
from __future__ import annotations

from datetime import date
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, PrivateAttr

from datamart.errors import UnknownSectionError

FROZEN = {
    "frozen": True,
    "populate_by_name": True,
    "arbitrary_types_allowed": False,
}


class FieldSet(BaseModel):
    """
    Ordered independent (key) fields plus the dependent (value) fields of a section.

    The first independent field is always the section's date axis. Names are
    compared with exact equality; nothing is ever case-folded or trimmed.
    """

    independent: Tuple[str, ...] = Field(..., description="Key fields, in key tuple order.")
    dependent: Tuple[str, ...] = Field((), description="Measured value fields.")

    model_config = FROZEN

    @property
    def date_field(self) -> str:
        return self.independent[0]

    def is_independent(self, name: str) -> bool:
        return name in self.independent

    def is_dependent(self, name: str) -> bool:
        return name in self.dependent


class SectionDefinition(BaseModel):
    """A named sub-table of a report."""

    display_name: str = Field(..., description="Section key in responses and URL paths.")
    alias: Optional[str] = Field(None, description="Programmatic name, when display_name is not one.")
    field_set: FieldSet

    model_config = FROZEN

    @property
    def name(self) -> str:
        """Canonical name used by calling code: the alias, or the display name."""
        return self.alias if self.alias is not None else self.display_name

    @property
    def independent(self) -> Tuple[str, ...]:
        return self.field_set.independent

    @property
    def dependent(self) -> Tuple[str, ...]:
        return self.field_set.dependent

    @property
    def date_field(self) -> str:
        return self.field_set.date_field


class ReportDefinition(BaseModel):
    """
    A numbered data-mart report and its sections.

    `sections` keeps declaration order. Lookups by alias and by display name go
    through indexes built once at construction time.
    """

    id: int = Field(..., gt=0, description="Data-mart report (slug) ID.")
    name: str = Field(..., description="Historical short name, e.g. lm_ct100.")
    description: str = Field("", description="Free text.")
    default_independent: str = Field(..., description="Report-level date axis.")
    section_list: Tuple[SectionDefinition, ...] = Field(..., min_length=1)

    model_config = FROZEN

    _by_display_name: Mapping[str, SectionDefinition] = PrivateAttr()
    _by_alias: Mapping[str, SectionDefinition] = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._by_display_name = MappingProxyType({s.display_name: s for s in self.section_list})
        self._by_alias = MappingProxyType({s.name: s for s in self.section_list})

    @property
    def sections(self) -> Mapping[str, SectionDefinition]:
        """Read-only mapping of display name to section, in declaration order."""
        return self._by_display_name

    @property
    def aliases(self) -> Tuple[str, ...]:
        return tuple(self._by_alias)

    def section(self, alias: str) -> SectionDefinition:
        """Look a section up by its canonical name."""
        try:
            return self._by_alias[alias]
        except KeyError:
            raise UnknownSectionError(alias, report_id=self.id) from None

    def section_by_display_name(self, display_name: str) -> Optional[SectionDefinition]:
        return self._by_display_name.get(display_name)


class Record(BaseModel):
    """
    One mapped row of a report section.
    """

    report_id: int = Field(..., description="Owning report ID.")
    section_name: str = Field(..., description="Section alias.")
    key_fields: Tuple[str, ...] = Field(..., description="Independent field names, key order.")
    key: Tuple[str, ...] = Field(..., description="Independent field values, same order.")
    values: Dict[str, Optional[str]] = Field(
        default_factory=dict, description="Dependent field values; None when absent."
    )
    report_date: date = Field(..., description="Decoded date axis (first key element).")
    row_index: int = Field(..., ge=0, description="Position of the source row in the response.")

    model_config = FROZEN

    def as_dict(self) -> Dict[str, Optional[str]]:
        """Flatten the key and values into one field -> text mapping."""
        flat: Dict[str, Optional[str]] = dict(zip(self.key_fields, self.key))
        flat.update(self.values)
        return flat


__all__ = [
    "FieldSet",
    "SectionDefinition",
    "ReportDefinition",
    "Record",
]
