"""Validation utilities for model-reported ratings and related fields."""

import math
from typing import Any, List, Mapping, Optional

from engines.text_signals import round_half_up


class ValidationError(Exception):
    """Base class for validation errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ScoreValidationError(ValidationError):
    """Raised when a score value is outside its scale."""


def coerce_rating(value: Any, lower: int, upper: int, fallback: int) -> int:
    """Round ``value`` onto the ``[lower, upper]`` scale.

    Anything that does not read as a finite number yields ``fallback``.
    """

    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    if math.isnan(number) or math.isinf(number):
        return fallback
    return int(max(lower, min(upper, round_half_up(number))))


def coerce_text_list(value: Any, limit: Optional[int] = None) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [str(entry).strip() for entry in value if entry is not None and str(entry).strip()]
    return items[:limit] if limit is not None else items


def require_scale(values: Mapping[str, Any], lower: float, upper: float) -> None:
    """Reject any value that is not a number within ``[lower, upper]``."""

    for field, value in values.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ScoreValidationError(f"{field} must be a number between {lower:g} and {upper:g}", field)
        if math.isnan(value) or not lower <= value <= upper:
            raise ScoreValidationError(f"{field} must be a number between {lower:g} and {upper:g}", field)
