"""
Bounded pending-scrobble queue.

- Holds finalized TrackRecords in submission (FIFO) order.
- Rejects inserts at capacity instead of evicting the oldest entry.
- Persistence lives in store.py; this is the in-memory side only.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from typing import Deque, Iterable, List

from track import TrackRecord

DEFAULT_CAPACITY = 200

log = logging.getLogger("queue")


class QueueFullError(Exception):
    def __init__(self, capacity: int):
        super().__init__(f"pending queue is full ({capacity} entries)")
        self.capacity = capacity


class PendingQueue:
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._lock = threading.Lock()
        self._q: Deque[TrackRecord] = deque()

    def restore(self, records: Iterable[TrackRecord]) -> None:
        """Load records recovered from disk. Nothing restored is ever dropped."""
        with self._lock:
            self._q.extend(records)
            if len(self._q) > self.capacity:
                log.warning("Restored queue holds %s entries, above capacity %s",
                            len(self._q), self.capacity)

    def put(self, record: TrackRecord) -> None:
        with self._lock:
            if len(self._q) >= self.capacity:
                raise QueueFullError(self.capacity)
            self._q.append(record)

    def peek(self) -> TrackRecord | None:
        with self._lock:
            return self._q[0] if self._q else None

    def pop_head(self, record: TrackRecord) -> bool:
        """Remove the head, but only if it is still `record`."""
        with self._lock:
            if self._q and self._q[0] is record:
                self._q.popleft()
                return True
            return False

    def snapshot(self) -> List[TrackRecord]:
        with self._lock:
            return list(self._q)

    def __len__(self) -> int:
        with self._lock:
            return len(self._q)
