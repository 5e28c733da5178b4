from datetime import datetime

import pytz


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return pytz.utc.localize(value)


def local_now(tz_name: str, now: datetime | None = None) -> datetime:
    return (now or utcnow()).astimezone(pytz.timezone(tz_name))
