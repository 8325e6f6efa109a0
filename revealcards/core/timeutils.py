from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime | None, *, now_utc: datetime) -> int:
    moment = ensure_utc(moment)
    if moment is None or moment <= now_utc:
        return 0
    remaining = (moment - now_utc).total_seconds()
    return max(1, int(remaining + 0.999))
