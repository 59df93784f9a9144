"""
Data-loading helpers for analytics: local-day windows and log queries.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

from recall.analytics.types import TimezoneLike
from recall.exceptions import ValidationError
from recall.srs.review_state import to_utc
from recall.srs.store import ReviewStore

EVENT_COLUMNS = ["card_id", "reviewed_at", "is_correct"]


def resolve_timezone(tz: TimezoneLike, default: str = "UTC") -> tzinfo:
    """
    Turn an IANA name or tzinfo into a tzinfo (None falls back to default).
    """
    if tz is None:
        tz = default
    if isinstance(tz, tzinfo):
        return tz
    if not isinstance(tz, str) or not tz:
        raise ValidationError(f"Timezone must be an IANA name or tzinfo, got {tz!r}")
    if tz.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone {tz!r}")


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Start of a local calendar day, in UTC."""
    return datetime.combine(day, time(0), tzinfo=tz).astimezone(timezone.utc)


def local_day_window(as_of: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    [start, end) of the local calendar day containing as_of, in UTC.

    Built from the two local midnights rather than start + 24h, so days
    that gain or lose an hour to DST keep their real length.
    """
    today = to_utc(as_of).astimezone(tz).date()
    return local_midnight(today, tz), local_midnight(today + timedelta(days=1), tz)


def date_range_window(start_date: date, end_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """[start, end) covering start_date..end_date inclusive, in UTC."""
    if end_date < start_date:
        raise ValidationError(f"end_date {end_date} is before start_date {start_date}")
    return local_midnight(start_date, tz), local_midnight(end_date + timedelta(days=1), tz)


def load_review_events_df(
    store: ReviewStore,
    user_id: str,
    card_ids: Iterable[str],
    start: datetime,
    end: datetime,
    timeout: Optional[float] = None
) -> pd.DataFrame:
    """
    Load a user's review events in [start, end) for the given cards into a dataframe.
    """
    entries = store.list_reviews(user_id, card_ids=card_ids, start=start, end=end, timeout=timeout)
    if not entries:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame(
        [
            {"card_id": e.card_id, "reviewed_at": e.reviewed_at, "is_correct": e.is_correct}
            for e in entries
        ],
        columns=EVENT_COLUMNS
    )
    df["reviewed_at"] = pd.to_datetime(df["reviewed_at"], utc=True)
    df["is_correct"] = df["is_correct"].astype(bool)
    return df.sort_values("reviewed_at").reset_index(drop=True)
