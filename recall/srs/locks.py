"""
Per-key write serialization.

One lock per (user_id, card_id). Locks are created on demand and dropped
once nobody holds or waits for them, so there is no global lock and no
unbounded growth.

PurgeGates order card and user purges against in-flight reviews.
"""

from __future__ import annotations
import threading
import time
from contextlib import contextmanager
from typing import Hashable, Iterator, Optional, Sequence

from recall.exceptions import UnavailableError, ValidationError


class Deadline:
    """Absolute deadline derived from a caller-supplied timeout (None = unbounded)."""

    def __init__(self, timeout: Optional[float]):
        if timeout is not None and timeout < 0:
            raise ValidationError(f"timeout must be non-negative, got {timeout}")
        self.timeout = timeout
        self._expires = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return max(0.0, self._expires - time.monotonic())

    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() >= self._expires

    def check(self, what: str) -> None:
        if self.expired():
            raise UnavailableError(f"Timed out after {self.timeout}s during {what}")


class KeyedLocks:
    """
    Registry of per-key locks.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable, deadline: Optional[Deadline] = None) -> Iterator[None]:
        """
        Hold the lock for key until the block exits.

        Raises:
            UnavailableError: If the lock cannot be acquired before the deadline
        """
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]

        remaining = deadline.remaining() if deadline is not None else None
        acquired = lock.acquire() if remaining is None else lock.acquire(timeout=remaining)
        try:
            if not acquired:
                raise UnavailableError(
                    f"Timed out after {deadline.timeout}s waiting for review lock on {key!r}"
                )
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class PurgeGates:
    """
    Shared/exclusive gates keyed by purge target, e.g. ("card", card_id).

    Reviews enter the gates of their card and user in shared mode, so they
    never wait on each other here. A purge holds its gate exclusively: it waits
    for in-flight reviews to finish and keeps new ones out until it commits.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._shared: dict[Hashable, int] = {}
        self._exclusive: set = set()

    @contextmanager
    def shared(self, keys: Sequence[Hashable], deadline: Optional[Deadline] = None) -> Iterator[None]:
        """
        Raises:
            UnavailableError: If a purge holds one of the gates past the deadline
        """
        remaining = deadline.remaining() if deadline is not None else None
        with self._cond:
            if not self._cond.wait_for(
                lambda: not any(key in self._exclusive for key in keys), timeout=remaining
            ):
                raise UnavailableError(
                    f"Timed out after {deadline.timeout}s waiting for purge of {keys!r}"
                )
            for key in keys:
                self._shared[key] = self._shared.get(key, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                for key in keys:
                    self._shared[key] -= 1
                    if self._shared[key] == 0:
                        del self._shared[key]
                self._cond.notify_all()

    @contextmanager
    def exclusive(self, key: Hashable) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: key not in self._exclusive and key not in self._shared)
            self._exclusive.add(key)
        try:
            yield
        finally:
            with self._cond:
                self._exclusive.discard(key)
                self._cond.notify_all()

    def review_keys(self, user_id: str, card_id: str) -> tuple:
        return (("card", card_id), ("user", user_id))
