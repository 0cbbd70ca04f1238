"""
Infrastructure package for datamart-ingest.

Centralizes HTTP concerns (sessions, timeouts, retries, envelope parsing).
Keep this layer focused on I/O, decoupled from the schema and mapping logic.
"""

from datamart.infrastructure.http_client import DatamartClient, DatamartResponse, SectionPayload

__all__ = [
    "DatamartClient",
    "DatamartResponse",
    "SectionPayload",
]
