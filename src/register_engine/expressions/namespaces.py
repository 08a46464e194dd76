"""Utility namespaces available to every rule as ``StringUtils`` and ``Math``."""

import math
from decimal import Decimal
from typing import Any, List, Optional


class StringUtils:
    """Null-safe string helpers."""

    EXPOSED = {
        "isBlank": "is_blank",
        "isNotBlank": "is_not_blank",
        "isEmpty": "is_empty",
        "isNotEmpty": "is_not_empty",
        "capitalize": "capitalize",
        "upperCase": "upper_case",
        "lowerCase": "lower_case",
        "trim": "trim",
        "join": "join",
        "contains": "contains",
        "defaultString": "default_string",
        "abbreviate": "abbreviate",
    }

    def is_blank(self, value: Optional[str]) -> bool:
        return value is None or not str(value).strip()

    def is_not_blank(self, value: Optional[str]) -> bool:
        return not self.is_blank(value)

    def is_empty(self, value: Optional[str]) -> bool:
        return value is None or str(value) == ""

    def is_not_empty(self, value: Optional[str]) -> bool:
        return not self.is_empty(value)

    def capitalize(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        return value[0].upper() + value[1:]

    def upper_case(self, value: Optional[str]) -> Optional[str]:
        return None if value is None else str(value).upper()

    def lower_case(self, value: Optional[str]) -> Optional[str]:
        return None if value is None else str(value).lower()

    def trim(self, value: Optional[str]) -> Optional[str]:
        return None if value is None else str(value).strip()

    def join(self, values: Optional[List[Any]], separator: str = "") -> Optional[str]:
        if values is None:
            return None
        return separator.join("" if v is None else str(v) for v in values)

    def contains(self, value: Optional[str], search: Optional[str]) -> bool:
        if value is None or search is None:
            return False
        return search in value

    def default_string(self, value: Optional[str], default: str = "") -> str:
        return default if value is None else value

    def abbreviate(self, value: Optional[str], max_width: int) -> Optional[str]:
        if value is None or len(value) <= max_width:
            return value
        if max_width < 4:
            raise ValueError("Minimum abbreviation width is 4")
        return value[: max_width - 3] + "..."


class MathUtils:
    """Numeric helpers mirroring java.lang.Math."""

    EXPOSED = {
        "abs": "abs",
        "round": "round",
        "floor": "floor",
        "ceil": "ceil",
        "max": "max",
        "min": "min",
        "pow": "pow",
        "sqrt": "sqrt",
    }

    def abs(self, value: float) -> float:
        return abs(value)

    def round(self, value: float) -> int:
        """Round half toward positive infinity, as Math.round does."""
        return int(math.floor(Decimal(str(value)) + Decimal("0.5")))

    def floor(self, value: float) -> float:
        return float(math.floor(value))

    def ceil(self, value: float) -> float:
        return float(math.ceil(value))

    def max(self, a: float, b: float) -> float:
        return max(a, b)

    def min(self, a: float, b: float) -> float:
        return min(a, b)

    def pow(self, base: float, exponent: float) -> float:
        return float(math.pow(base, exponent))

    def sqrt(self, value: float) -> float:
        return math.sqrt(value)


string_utils = StringUtils()
math_utils = MathUtils()
