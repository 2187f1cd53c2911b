"""Time helpers shared by jobs and handlers."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now():
    return datetime.now(timezone.utc)


def local_date_key(now, tz_name, *, days_ago=0):
    """``YYYY-MM-DD`` of ``now`` in ``tz_name``, optionally shifted back by whole days."""
    local = now.astimezone(ZoneInfo(tz_name)) - timedelta(days=days_ago)
    return local.date().isoformat()
