"""Review-due heuristic for learning items.

An item is due once enough whole days have passed since its last review.
The required gap widens with the number of distinct calendar days on which
the item has already been reviewed:

* never reviewed: 1 day after creation
* reviewed on one day: 3 days
* reviewed on two or more days: 7 days
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ReviewEvent:
    is_correct: bool
    timestamp: datetime


def coerce_datetime(value) -> Optional[datetime]:
    """Normalize Firestore timestamps, epoch numbers and ISO strings to aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        seconds = float(value)
        # Millisecond epochs are what JavaScript clients write.
        if abs(seconds) > 1e11:
            seconds = seconds / 1000.0
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith('Z'):
            raw = raw[:-1] + '+00:00'
        try:
            return coerce_datetime(datetime.fromisoformat(raw))
        except ValueError:
            return None
    to_datetime = getattr(value, 'ToDatetime', None)
    if callable(to_datetime):
        return coerce_datetime(to_datetime())
    return None


def round_half_up(value):
    return int(math.floor(value + 0.5))


def elapsed_days(now, since):
    return round_half_up((now - since).total_seconds() / SECONDS_PER_DAY)


def distinct_review_days(history: Iterable[ReviewEvent]):
    return {event.timestamp.astimezone(timezone.utc).date().isoformat() for event in history}


def review_threshold_days(distinct_days):
    if distinct_days <= 0:
        return 1
    if distinct_days == 1:
        return 3
    return 7


def review_history_from_item(item_data) -> List[ReviewEvent]:
    """Build review events from an item's ``isCorrectData``, dropping malformed entries."""
    raw_entries = (item_data or {}).get('isCorrectData')
    if not isinstance(raw_entries, list):
        return []
    history = []
    for entry in raw_entries:
        if not isinstance(entry, dict) or entry.get('isCorrect') is None:
            continue
        timestamp = coerce_datetime(entry.get('timestamp'))
        if timestamp is None:
            continue
        history.append(ReviewEvent(is_correct=bool(entry.get('isCorrect')), timestamp=timestamp))
    return history


def last_reviewed_at(created_at, history):
    ordered = sorted(history, key=lambda event: event.timestamp)
    if ordered:
        return ordered[-1].timestamp
    return coerce_datetime(created_at)


def should_review(now, created_at, history) -> bool:
    now = coerce_datetime(now)
    history = list(history or [])
    last_reviewed = last_reviewed_at(created_at, history)
    if now is None or last_reviewed is None:
        return False
    days_since = elapsed_days(now, last_reviewed)
    return days_since >= review_threshold_days(len(distinct_review_days(history)))
