"""
Response package: demultiplexing raw payloads and mapping rows into records.

Pure functions only; nothing here performs I/O or logs.
"""

from datamart.response.demux import DemuxMode, demux
from datamart.response.mapper import DuplicatePolicy, NullKeyPolicy, map_rows

__all__ = [
    "DemuxMode",
    "demux",
    "DuplicatePolicy",
    "NullKeyPolicy",
    "map_rows",
]
