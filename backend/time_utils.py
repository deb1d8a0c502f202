import os
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "Asia/Kolkata")
    return ZoneInfo(name)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    # Naive values come back from SQLite; they were written as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_date(dt: datetime) -> date:
    """Calendar day of ``dt`` in the fest's timezone."""
    return ensure_utc(dt).astimezone(_timezone()).date()
