"""Date helpers exposed to rules as ``dateService``.

Formats are SimpleDateFormat patterns ("dd/MM/yyyy", "E, MMM dd yyyy") as
written in register configurations, translated to strftime directives.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional

from register_engine.errors import RuleEvaluationError
from register_engine.utils.date_parsing import parse_fhir_date, parse_fhir_datetime, to_naive_utc

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_FORMAT = "E, MMM dd yyyy"

_JAVA_TOKEN = re.compile(r"'[^']*'|y+|M+|d+|E+|H+|h+|m+|s+|a")

_JAVA_TO_STRFTIME = {
    "yyyy": "%Y",
    "yy": "%y",
    "MMMM": "%B",
    "MMM": "%b",
    "MM": "%m",
    "dd": "%d",
    "EEEE": "%A",
    "HH": "%H",
    "hh": "%I",
    "mm": "%M",
    "ss": "%S",
    "a": "%p",
}


def java_pattern_to_strftime(pattern: str) -> str:
    """Translate a Java SimpleDateFormat pattern to a strftime format.

    Single-letter day/month/hour fields are zero-padded; E, EE and EEE
    map to the abbreviated weekday.
    """

    def replace(match: "re.Match[str]") -> str:
        token = match.group(0)
        if token.startswith("'"):
            return token[1:-1].replace("%", "%%") or "'"
        if token in _JAVA_TO_STRFTIME:
            return _JAVA_TO_STRFTIME[token]
        letter = token[0]
        if letter == "E":
            return "%A" if len(token) >= 4 else "%a"
        if letter == "y":
            return "%Y"
        if letter == "M":
            return "%B" if len(token) >= 4 else "%m"
        return {"d": "%d", "H": "%H", "h": "%I", "m": "%M", "s": "%S"}[letter]

    return _JAVA_TOKEN.sub(replace, pattern)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


class DateService:
    """Date arithmetic, comparison and formatting for rules."""

    EXPOSED = {
        "today": "today",
        "addOrSubtractTimeUnitFromCurrentDate": "add_or_subtract_time_unit_from_current_date",
        "compareDates": "compare_dates",
        "daysBetween": "days_between",
        "formatDate": "format_date",
        "prettifyDate": "prettify_date",
        "isAfterToday": "is_after_today",
        "isBeforeToday": "is_before_today",
    }

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> str:
        """Current date as ISO yyyy-MM-dd."""
        return self.now().date().isoformat()

    def add_or_subtract_time_unit_from_current_date(
        self,
        time_unit_count: int,
        time_unit: str = "DAY",
        operation: str = "-",
    ) -> str:
        """Shift today by a number of DAY, WEEK, MONTH or YEAR units.

        Returns:
            The shifted date as ISO yyyy-MM-dd.
        """
        if operation not in ("+", "-"):
            raise RuleEvaluationError(f"Unsupported operation '{operation}'")
        count = int(time_unit_count) * (1 if operation == "+" else -1)
        current = self.now().date()
        unit = str(time_unit).upper().rstrip("S")

        if unit == "DAY":
            shifted = current + timedelta(days=count)
        elif unit == "WEEK":
            shifted = current + timedelta(weeks=count)
        elif unit in ("MONTH", "YEAR"):
            months = count * 12 if unit == "YEAR" else count
            total = current.year * 12 + current.month - 1 + months
            year, month = divmod(total, 12)
            month += 1
            day = min(current.day, _days_in_month(year, month))
            shifted = date(year, month, day)
        else:
            raise RuleEvaluationError(f"Unsupported time unit '{time_unit}'")
        return shifted.isoformat()

    def compare_dates(self, first: Any, second: Any) -> int:
        """Return -1, 0 or 1 as first is before, equal to or after second."""
        left = self._require_date(first)
        right = self._require_date(second)
        return (left > right) - (left < right)

    def days_between(self, first: Any, second: Any) -> int:
        """Whole days from first to second (negative when second is earlier)."""
        return (self._require_date(second) - self._require_date(first)).days

    def is_after_today(self, value: Any) -> bool:
        return self._require_date(value) > self.now().date()

    def is_before_today(self, value: Any) -> bool:
        return self._require_date(value) < self.now().date()

    def format_date(
        self,
        value: Any,
        input_format: Optional[str] = None,
        expected_format: str = DEFAULT_DISPLAY_FORMAT,
    ) -> str:
        """Format a date with a Java pattern.

        Args:
            value: FHIR date/dateTime string, or a string in input_format.
            input_format: Java pattern the value is written in; FHIR when None.
            expected_format: Java pattern of the output.
        """
        if input_format:
            try:
                parsed = datetime.strptime(str(value), java_pattern_to_strftime(input_format))
            except ValueError as e:
                raise RuleEvaluationError(f"Cannot parse '{value}' as {input_format}: {e}") from e
        else:
            parsed = parse_fhir_datetime(value)
            if parsed is None:
                raise RuleEvaluationError(f"Invalid date '{value}'")
        return parsed.strftime(java_pattern_to_strftime(expected_format))

    def prettify_date(self, value: Any) -> str:
        """Describe a date relative to now ("2 days ago", "3 months from now")."""
        parsed = parse_fhir_datetime(value)
        if parsed is None:
            raise RuleEvaluationError(f"Invalid date '{value}'")
        delta = to_naive_utc(self.now()) - to_naive_utc(parsed)
        future = delta.total_seconds() < 0
        seconds = abs(int(delta.total_seconds()))

        if seconds < 60:
            return "moments from now" if future else "moments ago"
        minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
        if hours < 1:
            text = _plural(minutes, "minute")
        elif days < 1:
            text = _plural(hours, "hour")
        elif days < 7:
            text = _plural(days, "day")
        elif days < 30:
            text = _plural(days // 7, "week")
        elif days < 365:
            text = _plural(days // 30, "month")
        else:
            text = _plural(days // 365, "year")
        return f"{text} from now" if future else f"{text} ago"

    def _require_date(self, value: Any) -> date:
        parsed = parse_fhir_date(value)
        if parsed is None:
            raise RuleEvaluationError(f"Invalid date '{value}'")
        return parsed


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - timedelta(days=1)).day
