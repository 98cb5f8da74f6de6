"""In-memory record of processed inbound message ids.

WhatsApp redelivers a webhook when the acknowledgement is slow, so the
same message id can arrive more than once. Ids seen within the TTL are
treated as duplicates; the record is bounded by TTL and capacity.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable


class ProcessedMessageStore:
    """Thread-safe TTL and capacity bounded set of message ids.

    Default: ids are remembered for 300 seconds, at most 500 at a time,
    evicting the oldest first.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_locked(self, now: float) -> None:
        expired = [
            message_id for message_id, first_seen in self._entries.items()
            if now - first_seen > self._ttl_seconds
        ]
        for message_id in expired:
            del self._entries[message_id]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def evict(self, now: float | None = None) -> None:
        """Drop expired ids, then the oldest ids beyond capacity."""
        with self._lock:
            self._evict_locked(self._clock() if now is None else now)

    def seen(self, message_id: str | None) -> bool:
        """Return True if the id was recorded and has not expired."""
        if not message_id:
            return False
        with self._lock:
            self._evict_locked(self._clock())
            return message_id in self._entries

    def record(self, message_id: str | None) -> None:
        if not message_id:
            return
        with self._lock:
            now = self._clock()
            self._evict_locked(now)
            self._entries.setdefault(message_id, now)
            self._evict_locked(now)

    def check_and_record(self, message_id: str | None) -> bool:
        """Return True if the id is a duplicate; otherwise record it.

        Check and insert happen under one lock so two concurrent deliveries
        of the same id cannot both pass.
        """
        if not message_id:
            return False
        with self._lock:
            now = self._clock()
            self._evict_locked(now)
            if message_id in self._entries:
                return True
            self._entries[message_id] = now
            self._evict_locked(now)
            return False
