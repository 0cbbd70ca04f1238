from datamart.query.builder import DateRange, WireQuery, build, build_for_date, since
from datamart.query.dates import coerce_date, from_wire, to_wire

__all__ = [
    "DateRange",
    "WireQuery",
    "build",
    "build_for_date",
    "since",
    "coerce_date",
    "from_wire",
    "to_wire",
]
