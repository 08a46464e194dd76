"""Date parsing utilities for FHIR date, dateTime and instant values.

FHIR dates may be partial ("2020", "2020-05") and dateTimes may carry a
time zone offset or "Z". Partial dates resolve to the first day of the
period.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

# date: YYYY, YYYY-MM or YYYY-MM-DD
_RE_DATE = re.compile(r"^(\d{4})(?:-(\d{2})(?:-(\d{2}))?)?$")

# dateTime / instant: YYYY-MM-DDThh:mm[:ss[.fff]][Z|+hh:mm]
_RE_DATETIME = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,9}))?)?"
    r"(Z|[+-]\d{2}:\d{2})?$"
)


def _tz(offset: Optional[str]) -> Optional[timezone]:
    if offset is None:
        return None
    if offset == "Z":
        return timezone.utc
    sign = 1 if offset[0] == "+" else -1
    hours, minutes = offset[1:].split(":")
    return timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))


def parse_fhir_datetime(value: Any) -> Optional[datetime]:
    """Parse a FHIR date or dateTime into a datetime.

    Args:
        value: String, date or datetime (or None).

    Returns:
        datetime, naive unless the value carried an offset; None if unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _RE_DATETIME.match(text)
    if match:
        year, month, day, hour, minute, second, fraction, offset = match.groups()
        micros = int((fraction or "0")[:6].ljust(6, "0"))
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour), int(minute), int(second or 0), micros,
                tzinfo=_tz(offset),
            )
        except ValueError:
            return None

    parsed = parse_fhir_date(text)
    if parsed is None:
        return None
    return datetime(parsed.year, parsed.month, parsed.day)


def parse_fhir_date(value: Any) -> Optional[date]:
    """Parse a FHIR date (possibly partial) or the date part of a dateTime.

    Returns:
        date, or None if the value is not a valid FHIR date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if "T" in text:
        parsed = parse_fhir_datetime(text)
        return parsed.date() if parsed else None

    match = _RE_DATE.match(text)
    if not match:
        return None
    year, month, day = match.groups()
    try:
        return date(int(year), int(month or 1), int(day or 1))
    except ValueError:
        return None


def to_naive_utc(value: datetime) -> datetime:
    """Normalize aware datetimes to naive UTC so mixed values compare."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
