import logging
import threading
import time
from typing import Callable

from events import TrackChanged
from scrobble_queue import PendingQueue, QueueFullError
from track import Rating, TrackRecord, finalize

log = logging.getLogger("controller")


class LifecycleController:
    """Owns the single "current track" slot and feeds finished tracks to the queue.

    Every method runs under `lock`; callers must never hold it across network I/O.
    """

    def __init__(self, queue: PendingQueue, clock: Callable[[], float] = time.time,
                 current: TrackRecord | None = None):
        self.queue = queue
        self.clock = clock
        self.current = current
        self.lock = threading.RLock()

    def track_changed(self, event: TrackChanged) -> TrackRecord:
        with self.lock:
            if self.current is not None:
                self.finalize_current()
            self.current = TrackRecord.start(
                title=event.title,
                artist=event.artist,
                album=event.album,
                duration=event.duration,
                position=event.position,
                track_auth=event.track_auth,
                now=self.clock(),
            )
            log.info("Now playing: %s", self.current.describe())
            return self.current

    def playback_finished(self) -> None:
        with self.lock:
            if self.current is None:
                log.debug("Playback finished with no current track")
                return
            self.finalize_current()

    def love(self) -> bool:
        return self._rate(Rating.LOVED)

    def ban(self) -> bool:
        return self._rate(Rating.BANNED)

    def _rate(self, rating: Rating) -> bool:
        with self.lock:
            if self.current is None:
                log.info("Ignoring %s: no track is playing", rating.name.lower())
                return False
            self.current.rating = rating
            log.info("Rated %s: %s", rating.name.lower(), self.current.describe())
            return True

    def finalize_current(self) -> TrackRecord | None:
        """Classify the current track, queue it if it qualifies, and clear the slot."""
        with self.lock:
            record, self.current = self.current, None
            if record is None:
                return None
            queued = finalize(record, self.clock())
            if queued is None:
                return None
            try:
                self.queue.put(queued.copy())
            except QueueFullError as e:
                # Explicit drop: the queue never grows past capacity
                log.error("Dropping scrobble, %s: %s start=%s rating=%r",
                          e, queued.describe(), queued.start_time, queued.rating.value)
                return None
            log.info("Enqueued %s (rating=%r, queue=%s)",
                     queued.describe(), queued.rating.value, len(self.queue))
            return queued

    def discard_current(self) -> None:
        with self.lock:
            if self.current is not None:
                log.info("Discarding current track: %s", self.current.describe())
            self.current = None

    def mark_now_playing(self, track: TrackRecord, success: bool) -> None:
        with self.lock:
            if self.current is track:
                self.current.posted_now_playing = success
            else:
                log.debug("Now playing result for a track that is no longer current")

    def needs_now_playing(self) -> bool:
        with self.lock:
            return self.current is not None and not self.current.posted_now_playing
