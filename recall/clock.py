"""
Injectable clocks.

Pure scheduling code never reads the system clock; callers pass timestamps
and the engine asks its clock for "now".
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock frozen at a given instant, for tests and replays.
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._instant = instant

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs (days=, hours=...)."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant
