from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


def resolve_zone(name: str | None) -> tzinfo | None:
    """Return the named IANA zone, or None for the process-local system zone."""
    if not name:
        return None
    return ZoneInfo(name)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime, zone: tzinfo | None = None) -> datetime:
    # astimezone() without an argument applies the system zone rules per instant,
    # so DST transitions land on the right calendar day.
    value = as_utc(value)
    return value.astimezone(zone) if zone is not None else value.astimezone()


def local_day(value: datetime, zone: tzinfo | None = None) -> date:
    return to_local(value, zone).date()


def days_before(value: datetime, days: int, zone: tzinfo | None = None) -> datetime:
    """Same local wall-clock time ``days`` calendar days earlier, returned in UTC."""
    local = to_local(value, zone)
    if zone is None:
        # naive astimezone() resolves the offset for the earlier date, not today's
        shifted = (local.replace(tzinfo=None) - timedelta(days=days)).astimezone()
    else:
        shifted = local - timedelta(days=days)
    return as_utc(shifted)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
