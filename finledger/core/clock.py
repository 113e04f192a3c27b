"""
Calendar helpers.

Every bucket key and "current month" window is computed in one configured
zone (Settings.TIMEZONE). Aware timestamps are converted into that zone;
naive timestamps are read as wall-clock time already in that zone.
"""
import calendar
from datetime import datetime, tzinfo
from typing import Tuple
from zoneinfo import ZoneInfo


def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def localize(value: datetime, zone: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value.astimezone(zone)


def now_in(zone: tzinfo) -> datetime:
    return datetime.now(zone)


def month_window(moment: datetime, zone: tzinfo) -> Tuple[datetime, datetime]:
    """Return [first instant of the month, first instant of the next month)."""
    local = localize(moment, zone)
    start = datetime(local.year, local.month, 1, tzinfo=zone)
    if local.month == 12:
        end = datetime(local.year + 1, 1, 1, tzinfo=zone)
    else:
        end = datetime(local.year, local.month + 1, 1, tzinfo=zone)
    return start, end


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
