"""
Utilities package for datamart-ingest.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from datamart.utils.logging import ConsoleFormatter, JsonFormatter, configure_logging, get_logger

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
