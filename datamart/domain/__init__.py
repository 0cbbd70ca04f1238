"""
Domain package for datamart-ingest.

Exports the frozen report/section definitions and the mapped `Record` type.
Keep this package focused on data definitions and validation concerns.
"""

from datamart.domain.models import FieldSet, Record, ReportDefinition, SectionDefinition

__all__ = [
    "FieldSet",
    "Record",
    "ReportDefinition",
    "SectionDefinition",
]
