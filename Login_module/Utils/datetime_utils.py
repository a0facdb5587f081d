"""
DateTime utility functions - All operations use IST (Indian Standard Time).
Database storage, scheduler cutoffs, coupon expiry and API responses all use IST.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional

# IST timezone (UTC+5:30)
IST = timezone(timedelta(hours=5, minutes=30))


def to_ist(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is in IST timezone.
    If datetime is naive or in different timezone, convert to IST.

    SQLite drops tzinfo on storage, so naive values read back from it
    are IST wall-clock times.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=IST)

    if dt.tzinfo == IST:
        return dt

    return dt.astimezone(IST)


def to_ist_isoformat(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert datetime to IST and return as ISO format string
    (e.g. "2024-12-17T14:30:00+05:30"), or None if input is None.
    """
    ist_dt = to_ist(dt)
    if ist_dt is None:
        return None
    return ist_dt.isoformat()


def now_ist() -> datetime:
    """
    Get current IST datetime (timezone-aware).
    Use this for ALL datetime operations - column defaults, cutoffs, expiry checks.
    """
    return datetime.now(IST)


def hours_ago(hours: float, now: Optional[datetime] = None) -> datetime:
    return to_ist(now or now_ist()) - timedelta(hours=hours)


def hours_from_now(hours: float, now: Optional[datetime] = None) -> datetime:
    return to_ist(now or now_ist()) + timedelta(hours=hours)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when expires_at is set and not in the future."""
    if expires_at is None:
        return False
    return to_ist(expires_at) <= to_ist(now or now_ist())
