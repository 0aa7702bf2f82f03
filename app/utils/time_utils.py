import math
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import pytz
from pytz import UTC

from config import settings


def get_local_timezone():
    return pytz.timezone(settings.TIMEZONE)


def now_utc() -> datetime:
    now = datetime.now(UTC)
    # BSON dates only keep milliseconds
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Make a datetime offset-aware, assuming UTC for naive values read back from MongoDB."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC with millisecond precision, the shape pymongo hands back on reads."""
    if value is None:
        return None
    value = ensure_utc(value).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(0, math.floor(seconds))


def day_start_for_date(day: date, tz=None) -> datetime:
    tz = tz or get_local_timezone()
    midnight = tz.localize(datetime(day.year, day.month, day.day))
    return to_storage(midnight)


def local_date(moment: datetime, tz=None) -> date:
    tz = tz or get_local_timezone()
    return ensure_utc(moment).astimezone(tz).date()


def local_day_start(moment: datetime, tz=None) -> datetime:
    """Storage key of the local calendar day containing `moment`."""
    tz = tz or get_local_timezone()
    return day_start_for_date(local_date(moment, tz), tz)


def month_range(month: int, year: int, tz=None) -> Tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) storage keys of a local calendar month."""
    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return day_start_for_date(first, tz), day_start_for_date(following, tz)


def format_local_time(moment: datetime, tz=None) -> str:
    tz = tz or get_local_timezone()
    return ensure_utc(moment).astimezone(tz).strftime("%H:%M:%S")


def add_seconds(moment: datetime, seconds: int) -> datetime:
    return moment + timedelta(seconds=seconds)
