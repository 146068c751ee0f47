import logging
from concurrent.futures import Executor, Future
from typing import Callable

from events import FlushCompleted, NowPlayingCompleted
from lastfm_client import LastFMAuthError, LastFMClient, LastFMRejectedError
from scrobble_queue import PendingQueue
from track import Rating, TrackRecord

log = logging.getLogger("orchestrator")


class SubmissionOrchestrator:
    """Runs the two background jobs: announce now-playing, and flush the queue.

    Each job is single-flight: its handle is set while the job is outstanding
    and cleared only when the service processes the job's completion event.
    Jobs report back exclusively through `post`.
    """

    def __init__(self, client: LastFMClient | None, queue: PendingQueue, executor: Executor,
                 post: Callable[[object], object], alert: Callable[..., None] | None = None):
        self.client = client
        self.queue = queue
        self.executor = executor
        self.post = post
        self.alert = alert
        self.now_playing_job: Future | None = None
        self.flush_job: Future | None = None

    @property
    def available(self) -> bool:
        return self.client is not None and self.client.session is not None

    @property
    def idle(self) -> bool:
        return self.now_playing_job is None and self.flush_job is None

    # -------- now playing --------
    def start_now_playing(self, track: TrackRecord) -> bool:
        if self.now_playing_job is not None:
            log.debug("Now playing update already in flight")
            return False
        if not self.available:
            log.warning("Last.fm session unavailable; not sending now playing")
            return False
        self.now_playing_job = self.executor.submit(self._now_playing, track, track.snapshot())
        return True

    def _now_playing(self, track, snapshot) -> None:
        success = False
        try:
            success = self.client.update_now_playing(snapshot)
        except Exception as e:
            log.debug("Now playing job failed: %s", e)
        log.debug("Now playing for %s — %s: %s", snapshot.artist, snapshot.title,
                  "ok" if success else "failed")
        self.post(NowPlayingCompleted(track=track, success=success))

    def now_playing_done(self) -> None:
        self.now_playing_job = None

    # -------- flush --------
    def start_flush(self) -> bool:
        if self.flush_job is not None:
            log.debug("Flush already in flight")
            return False
        if not self.available:
            log.warning("Last.fm session unavailable; not flushing %s queued scrobbles", len(self.queue))
            return False
        self.flush_job = self.executor.submit(self._flush, self.client.session.key)
        return True

    def _flush(self, session_key: str) -> None:
        log.info("Going to submit %s tracks", len(self.queue))
        submitted = 0
        success = False
        try:
            while True:
                head = self.queue.peek()
                if head is None:
                    break
                track = head.snapshot()
                try:
                    if track.rating is Rating.LOVED:
                        self.client.love_track(track.artist, track.title, session_key)
                    if track.rating is Rating.BANNED:
                        self.client.ban_track(track.artist, track.title, session_key)
                except LastFMRejectedError as e:
                    log.warning("Rating %r for %s — %s not accepted: %s",
                                track.rating.value, track.artist, track.title, e)
                try:
                    self.client.submit_scrobble(track, track.start_time, track.rating)
                    submitted += 1
                except LastFMRejectedError as e:
                    # Resending can never succeed; consume it so later entries still go out
                    log.error("Dropping scrobble %s — %s start=%s: %s",
                              track.artist, track.title, track.start_time, e)
                self.queue.pop_head(head)
            success = True
        except LastFMAuthError as e:
            log.error("Flush stopped (auth): %s; queue size=%s", e, len(self.queue))
            if self.alert:
                self.alert("ERROR", "Last.fm authentication failed", str(e),
                           {"pending_queue_size": len(self.queue)})
        except Exception as e:
            log.info("Flush paused due to error: %s; queue size=%s", e, len(self.queue))
        if submitted:
            log.info("Submitted %s queued scrobbles. Queue size now %s", submitted, len(self.queue))
        self.post(FlushCompleted(success=success, submitted=submitted))

    def flush_done(self) -> None:
        self.flush_job = None
