"""Validation helpers used across the project."""

from __future__ import annotations

import datetime
import re
from typing import Any, Final

# Epoch numbers are milliseconds, the way browser clients serialize dates.
EPOCH_UNIT_SECONDS = 1000

# A bare calendar date is UTC midnight, as in ECMAScript Date parsing.
DATE_ONLY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def coerce_datetime(value: Any) -> datetime.datetime:
    """
    Convert *value* into a timezone-aware datetime.
    - datetime: naive values are taken as local time
    - date: local midnight of that day
    - str: ISO-8601, a trailing "Z" means UTC; a bare "YYYY-MM-DD" is UTC
      midnight; other offset-less strings are local time
    - int/float: milliseconds since the Unix epoch

    Raises ValueError for unparsable strings and TypeError for anything else.
    """
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, datetime.date):
        dt = datetime.datetime.combine(value, datetime.time())
    elif isinstance(value, str):
        text = value.strip()
        if DATE_ONLY_PATTERN.match(text):
            return datetime.datetime.combine(
                datetime.date.fromisoformat(text), datetime.time(), tzinfo=datetime.timezone.utc
            )
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.datetime.fromisoformat(text)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.datetime.fromtimestamp(value / EPOCH_UNIT_SECONDS, tz=datetime.timezone.utc)
    else:
        raise TypeError(f"Cannot interpret {type(value).__name__} as a date/time")

    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


def coerce_optional_datetime(value: Any) -> datetime.datetime | None:
    """Like *coerce_datetime*, but None and empty strings become None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_datetime(value)
