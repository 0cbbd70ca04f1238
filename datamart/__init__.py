"""
datamart-ingest - typed ingestion of USDA AMS Livestock Mandatory Reporting data.

The package turns a declarative description of the data-mart's reports into
validated query strings, fetches the per-section JSON payloads over HTTP, and
maps the rows into typed records:

- Schema registry with load-time validation of report/section definitions
- Query builder rendering the `q` filter parameter
- Response demultiplexer and record mapper
- Thread-pooled fetch orchestrator with per-section error isolation
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from datamart.config import Settings, get_settings
from datamart.domain.models import FieldSet, Record, ReportDefinition, SectionDefinition
from datamart.errors import DatamartError, is_retryable
from datamart.orchestrator import ReportResult, SectionResult, fetch_report, fetch_reports
from datamart.query.builder import DateRange, WireQuery, build, build_for_date
from datamart.response.demux import DemuxMode, demux
from datamart.response.mapper import DuplicatePolicy, NullKeyPolicy, map_rows
from datamart.schema.registry import Schema, SchemaRegistry, get_schema, load_schema, load_schema_file
from datamart.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "FieldSet",
    "Record",
    "ReportDefinition",
    "SectionDefinition",
    # Errors
    "DatamartError",
    "is_retryable",
    # Schema
    "Schema",
    "SchemaRegistry",
    "get_schema",
    "load_schema",
    "load_schema_file",
    # Query / response
    "DateRange",
    "WireQuery",
    "build",
    "build_for_date",
    "DemuxMode",
    "demux",
    "DuplicatePolicy",
    "NullKeyPolicy",
    "map_rows",
    # Orchestration
    "ReportResult",
    "SectionResult",
    "fetch_report",
    "fetch_reports",
    # Logging
    "configure_logging",
    "get_logger",
]
