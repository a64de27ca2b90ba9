"""
client/dedup.py -- Bounded memory of recently processed events.

Camera scanners fire the same decode callback many times while a code is in
frame. ScanSession records each captured token here and drops repeats that
arrive within the window, so one physical scan produces one Scan call.

The cache is an LRU set over (identifier, timestamp) entries with a hard size
cap. The oldest entry is evicted first; memory never grows past max_entries.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional


class RecentEventCache:
    """LRU set of recently seen event identifiers.

    Usage:
        seen = RecentEventCache(max_entries=64, window=timedelta(seconds=5))
        if seen.check_and_add(token, now):
            ...  # duplicate, ignore
    """

    def __init__(self, max_entries: int = 128, window: Optional[timedelta] = None) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        # None = an identifier counts as a duplicate for as long as it is cached
        self.window = window
        self._entries: OrderedDict[str, datetime] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def seen(self, identifier: str, at: datetime) -> bool:
        """Return True if identifier was recorded within the window before `at`."""
        last = self._entries.get(identifier)
        if last is None:
            return False
        return self.window is None or at - last <= self.window

    def add(self, identifier: str, at: datetime) -> None:
        """Record identifier at `at`, refreshing its position; evict the oldest past capacity."""
        self._entries[identifier] = at
        self._entries.move_to_end(identifier)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def check_and_add(self, identifier: str, at: datetime) -> bool:
        """Record the event and return whether it was a duplicate."""
        duplicate = self.seen(identifier, at)
        self.add(identifier, at)
        return duplicate

    def clear(self) -> None:
        self._entries.clear()
