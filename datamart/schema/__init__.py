"""
Schema package: the bundled report catalogue and the registry that validates it.
"""

from datamart.schema.registry import (
    BUNDLED_SCHEMA_PATH,
    Schema,
    SchemaRegistry,
    get_schema,
    load_default_schema,
    load_schema,
    load_schema_file,
)

__all__ = [
    "BUNDLED_SCHEMA_PATH",
    "Schema",
    "SchemaRegistry",
    "get_schema",
    "load_default_schema",
    "load_schema",
    "load_schema_file",
]
