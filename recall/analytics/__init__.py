"""
Analytics package exports.
"""

from recall.analytics.queries import local_day_window, resolve_timezone
from recall.analytics.service import count_today, daily_activity, tally_today
from recall.analytics.types import DeckTally

__all__ = [
    "local_day_window",
    "resolve_timezone",
    "count_today",
    "daily_activity",
    "tally_today",
    "DeckTally",
]
