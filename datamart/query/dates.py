"""
Conversion between calendar dates and the data-mart's MM/DD/YYYY wire format.

Dates are calendar dates only; there is no time zone concept anywhere in the
data-mart API.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Union

from datamart.errors import DateFormatError

_WIRE_DATE = re.compile(r"(?P<month>[0-9]{1,2})/(?P<day>[0-9]{1,2})/(?P<year>[0-9]{4})")
_ISO_DATE = re.compile(r"(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2})")

DateLike = Union[date, datetime, str]


def _as_date(value: Union[date, datetime]) -> date:
    # datetime is a subclass of date; drop the time part explicitly.
    if isinstance(value, datetime):
        return value.date()
    return value


def _build(year: str, month: str, day: str, text: str) -> date:
    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise DateFormatError(f"{text!r} is not a valid calendar date: {exc}") from None


def to_wire(value: Union[date, datetime]) -> str:
    """Render a date as zero-padded MM/DD/YYYY (years below 1000 keep leading zeros)."""
    if not isinstance(value, date):
        raise DateFormatError(f"Expected a date, got {type(value).__name__}: {value!r}")
    value = _as_date(value)
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d}"


def from_wire(text: str) -> date:
    """
    Parse a MM/DD/YYYY string.

    Single-digit month and day are accepted; the year must be exactly four
    digits. Anything else raises DateFormatError.
    """
    if not isinstance(text, str):
        raise DateFormatError(f"Expected MM/DD/YYYY text, got {type(text).__name__}: {text!r}")
    match = _WIRE_DATE.fullmatch(text)
    if match is None:
        raise DateFormatError(f"{text!r} is not a MM/DD/YYYY date.")
    return _build(match["year"], match["month"], match["day"], text)


def coerce_date(value: DateLike) -> date:
    """
    Accept a date, a datetime, MM/DD/YYYY text or ISO YYYY-MM-DD text.
    """
    if isinstance(value, date):
        return _as_date(value)
    if isinstance(value, str):
        match = _ISO_DATE.fullmatch(value)
        if match is not None:
            return _build(match["year"], match["month"], match["day"], value)
        return from_wire(value)
    raise DateFormatError(f"Cannot interpret {value!r} as a date.")


__all__ = ["DateLike", "to_wire", "from_wire", "coerce_date"]
