"""Version key allocation service.

VersionAllocator is a stateful service that hands out ``(created_at, sequence)``
pairs for new artifact rows.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import timedelta

from worldvault.core.identity import VersionKey
from worldvault.core.types import Clock, ensure_utc, utc_now

_TICK = timedelta(microseconds=1)

DEFAULT_MAX_MARKS = 10_000


class VersionAllocator:
    """Allocates strictly increasing version keys per logical id.

    Keeps a high-water mark per id. A clock reading that does not move past
    the mark (equal timestamps, or a clock stepping backwards) is bumped one
    microsecond past it, so ``created_at`` alone orders versions and exact
    timestamp lookups never see two rows.

    Marks live in an LRU of at most ``max_marks`` ids. An evicted mark is
    rebuilt by the next ``observe`` of the stored latest key, which the
    version store performs before every allocation for an existing id.

    The lock guards only the in-memory marks; callers seed a mark from
    storage with ``observe`` before allocating, outside the lock.

    Args:
        clock: Source of the current instant (default: UTC wall clock).
        max_marks: Most ids remembered at once.
    """

    def __init__(self, clock: Clock = utc_now, max_marks: int = DEFAULT_MAX_MARKS):
        if max_marks < 1:
            raise ValueError("max_marks must be positive")
        self._clock = clock
        self._max_marks = max_marks
        self._lock = threading.Lock()
        self._marks: OrderedDict[str, VersionKey] = OrderedDict()

    def __len__(self) -> int:
        return len(self._marks)

    def _remember(self, key: VersionKey) -> None:
        self._marks[key.logical_id] = key
        self._marks.move_to_end(key.logical_id)
        while len(self._marks) > self._max_marks:
            self._marks.popitem(last=False)

    def observe(self, key: VersionKey) -> None:
        """Raise the high-water mark for ``key.logical_id`` to at least ``key``."""
        with self._lock:
            current = self._marks.get(key.logical_id)
            if current is None or key.sort_key() > current.sort_key():
                current = key
            self._remember(current)

    def allocate(self, logical_id: str) -> VersionKey:
        """Next version key for a logical id.

        Returns:
            Key whose ``created_at`` is strictly after every key observed or
            allocated for this id, with ``sequence`` one past the mark.
        """
        now = ensure_utc(self._clock())
        with self._lock:
            mark = self._marks.get(logical_id)
            if mark is None:
                key = VersionKey(logical_id, now, 1)
            else:
                created_at = now if now > mark.created_at else mark.created_at + _TICK
                key = VersionKey(logical_id, created_at, mark.sequence + 1)
            self._remember(key)
            return key

    def forget(self, logical_id: str) -> None:
        """Drop the mark after versions were discarded; the next save re-observes."""
        with self._lock:
            self._marks.pop(logical_id, None)
