"""
Time helpers.

All timestamps are stored as naive UTC; calendar logic (click buckets,
payout periods) is done in the program timezone.
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from backend.app.core.settings import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def program_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().TIMEZONE)


def to_naive_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """Normalise an incoming timestamp to naive UTC. Naive input is taken as UTC already."""
    if ts is None or ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def to_local_date(ts: datetime) -> date:
    """Calendar day of a timestamp in the program timezone (naive means UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(program_tz()).date()


def local_today() -> date:
    return datetime.now(tz=program_tz()).date()


def local_midnight_utc(day: date) -> datetime:
    """Naive UTC instant of local midnight at the start of `day`."""
    local = datetime(day.year, day.month, day.day, tzinfo=program_tz())
    return local.astimezone(timezone.utc).replace(tzinfo=None)
