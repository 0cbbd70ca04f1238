"""
Error taxonomy for the datamart ingestion engine.

Every error raised by the schema/query/response core derives from
`DatamartError` and is never retryable: retrying against the same schema or
payload cannot succeed. Transport failures raised by `requests` are left
untouched; `is_retryable` classifies them for callers that want to retry.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

import requests

RETRYABLE_STATUS_CODES = frozenset({429})


class DatamartError(Exception):
    """Base class for all errors raised by the engine."""

    retryable: bool = False


class SchemaValidationError(DatamartError):
    """
    The report schema is internally inconsistent.

    Raised once at load time; fatal for startup.
    """

    def __init__(
        self,
        message: str,
        report_id: Any = None,
        section: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        self.report_id = report_id
        self.section = section
        self.field = field
        location = []
        if report_id is not None:
            location.append(f"report={report_id}")
        if section is not None:
            location.append(f"section={section!r}")
        if field is not None:
            location.append(f"field={field!r}")
        prefix = f"[{' '.join(location)}] " if location else ""
        super().__init__(f"{prefix}{message}")


class UnknownReportError(DatamartError, LookupError):
    """A report ID or name is not present in the schema."""

    def __init__(self, ref: Any) -> None:
        self.ref = ref
        super().__init__(f"Report {ref!r} is not known to the datamart schema.")


class QueryBuildError(DatamartError):
    """A query could not be built from the given filters."""


class UnknownFieldError(QueryBuildError, LookupError):
    """A filter names a field that is not an independent field of the section."""

    def __init__(self, field: str, section: str, known: Tuple[str, ...] = ()) -> None:
        self.field = field
        self.section = section
        hint = f" Independent fields: {', '.join(known)}" if known else ""
        super().__init__(f"Field {field!r} is not an independent field of section {section!r}.{hint}")


class DateFormatError(DatamartError, ValueError):
    """A value could not be read or written as a MM/DD/YYYY calendar date."""


class DemuxError(DatamartError):
    """A raw payload does not line up with the report's declared sections."""


class UnknownSectionError(DemuxError, LookupError):
    """A section name (display name or alias) is not declared by the report."""

    def __init__(self, section: str, report_id: Any = None) -> None:
        self.section = section
        self.report_id = report_id
        super().__init__(f"Section {section!r} is not declared by report {report_id}.")


class MissingSectionError(DemuxError):
    """A declared section is absent from the raw payload."""

    def __init__(self, section: str, report_id: Any = None) -> None:
        self.section = section
        self.report_id = report_id
        super().__init__(
            f"Report {report_id} declares section {section!r} but the payload does not contain it."
        )


class MappingError(DatamartError):
    """Base class for failures turning raw rows into records."""


class FieldMappingError(MappingError):
    """A raw row lacks a value for a required independent field."""

    def __init__(self, field: str, row_index: int, section: Optional[str] = None, reason: str = "missing") -> None:
        self.field = field
        self.row_index = row_index
        self.section = section
        where = f" in section {section!r}" if section else ""
        super().__init__(f"Row {row_index}{where}: independent field {field!r} is {reason}.")


class DuplicateKeyError(MappingError):
    """Two rows of one section share the same independent-field key tuple."""

    def __init__(
        self,
        key: Tuple[str, ...],
        first_index: int,
        second_index: int,
        section: Optional[str] = None,
    ) -> None:
        self.key = key
        self.first_index = first_index
        self.second_index = second_index
        self.section = section
        where = f" in section {section!r}" if section else ""
        super().__init__(
            f"Duplicate key {key!r}{where}: rows {first_index} and {second_index} share it."
        )


class ResponseFormatError(DatamartError):
    """The server answered, but not with the expected JSON envelope."""


def is_retryable(exc: BaseException) -> bool:
    """
    Classify an exception as worth retrying by the caller.

    Connection problems, timeouts, 5xx and 429 responses are transient. Errors
    raised by the engine itself never are.
    """
    if isinstance(exc, DatamartError):
        return exc.retryable
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        if response is None:
            return False
        return response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    return False


__all__ = [
    "DatamartError",
    "SchemaValidationError",
    "UnknownReportError",
    "QueryBuildError",
    "UnknownFieldError",
    "DateFormatError",
    "DemuxError",
    "UnknownSectionError",
    "MissingSectionError",
    "MappingError",
    "FieldMappingError",
    "DuplicateKeyError",
    "ResponseFormatError",
    "is_retryable",
]
