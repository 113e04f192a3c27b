import math
from datetime import date, datetime, timezone
from typing import Any


def coerce_amount(value: Any) -> float:
    """Malformed amounts (non-numeric, NaN, infinite, negative) are stored as 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount


def coerce_timestamp(value: Any) -> Any:
    """Missing timestamps default to now; ISO strings (with 'Z' or date-only) are parsed."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            # let pydantic report it
            return value
    return value


def coerce_day(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
