import logging
import queue
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable

from controller import LifecycleController
from events import (
    Ban, ConnectivityChanged, FlushCompleted, Love, NowPlayingCompleted,
    PlaybackFinished, PlayerStateResult, TrackChanged,
)
from lastfm_client import LastFMClient
from lifetime import LifetimePolicy
from orchestrator import SubmissionOrchestrator
from scrobble_queue import DEFAULT_CAPACITY, PendingQueue
from store import StateStore

log = logging.getLogger("scrobbler")

_COMPLETIONS = (NowPlayingCompleted, FlushCompleted)


class ScrobblerService:
    """Single actor that turns playback events into scrobbles.

    Events are handled one at a time, in arrival order, either by the thread
    started with start() or synchronously through run_pending(). Background
    jobs report back by posting completion events into the same inbox.
    """

    def __init__(self, client: LastFMClient | None, store: StateStore, *,
                 display=None, executor: Executor | None = None,
                 clock: Callable[[], float] = time.time,
                 queue_limit: int = DEFAULT_CAPACITY,
                 scrobble_music_player: bool = True,
                 alert: Callable[..., None] | None = None):
        self.store = store
        self.display = display
        self.scrobble_music_player = scrobble_music_player

        pending = PendingQueue(queue_limit)
        pending.restore(store.load_queue())
        self.queue = pending
        self.controller = LifecycleController(pending, clock, current=store.load_current())

        self._owns_executor = executor is None
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="scrobbler")
        self.orchestrator = SubmissionOrchestrator(client, pending, executor, self.post, alert)
        self.policy = LifetimePolicy(self.orchestrator)

        self._inbox: queue.Queue = queue.Queue()
        self._post_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.stopped = False

        self._handlers = {
            TrackChanged: self._on_track_changed,
            PlaybackFinished: self._on_playback_finished,
            Love: self._on_love,
            Ban: self._on_ban,
            ConnectivityChanged: self._on_connectivity,
            PlayerStateResult: self._on_player_state,
            NowPlayingCompleted: self._on_now_playing_completed,
            FlushCompleted: self._on_flush_completed,
        }
        log.info("Scrobbler service up (current=%s, queue=%s)",
                 self.controller.current.describe() if self.controller.current else None, len(pending))

    # -------- actor plumbing --------
    def post(self, event) -> bool:
        """Thread-safe. False once the service has stopped."""
        with self._post_lock:
            if self.stopped:
                return False
            self._inbox.put(event)
            return True

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="scrobbler-service", daemon=True)
        self._thread.start()

    def run(self) -> None:
        while not self.stopped:
            try:
                event = self._inbox.get(timeout=0.5)
            except queue.Empty:
                continue
            self.handle(event)

    def run_pending(self) -> None:
        while not self.stopped:
            try:
                event = self._inbox.get_nowait()
            except queue.Empty:
                return
            self.handle(event)

    def join(self, timeout: float | None = None) -> None:
        """Wait for the actor and, once stopped, for jobs it left running.

        A flush cut short by a forced stop keeps removing entries after the
        first persist, so the queue is written again once it has settled.
        """
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        if not self.stopped:
            return
        if self._owns_executor:
            self.orchestrator.executor.shutdown(wait=True)
        self.persist()

    def handle(self, event) -> None:
        if self.stopped:
            log.debug("Service stopped; ignoring %s", type(event).__name__)
            return
        handler = self._handlers.get(type(event))
        if handler is None:
            log.warning("Unknown event %r", event)
            return
        if not isinstance(event, _COMPLETIONS) and not self.orchestrator.available:
            log.warning("No Last.fm session; ignoring %s", type(event).__name__)
            self.stop_if_ready()
            return
        handler(event)
        if self.stopped:
            return
        if not isinstance(event, _COMPLETIONS):
            self._update_display()
        self.stop_if_ready()

    # -------- handlers --------
    def _on_track_changed(self, event: TrackChanged) -> None:
        track = self.controller.track_changed(event)
        self.orchestrator.start_now_playing(track)

    def _on_playback_finished(self, event: PlaybackFinished) -> None:
        self.controller.playback_finished()

    def _on_love(self, event: Love) -> None:
        self.controller.love()

    def _on_ban(self, event: Ban) -> None:
        self.controller.ban()

    def _on_connectivity(self, event: ConnectivityChanged) -> None:
        if not event.connected:
            log.info("Connectivity lost; stopping")
            self._try_stop()
            return
        log.info("Connectivity restored")
        with self.controller.lock:
            track = self.controller.current if self.controller.needs_now_playing() else None
        if track is not None and self.orchestrator.now_playing_job is None:
            self.orchestrator.start_now_playing(track)
        if len(self.queue) > 0 and self.orchestrator.flush_job is None:
            self.orchestrator.start_flush()

    def _on_player_state(self, event: PlayerStateResult) -> None:
        if not self.scrobble_music_player:
            # Scrobbling the player may have been switched off mid-track
            self.controller.discard_current()
            return
        if not event.is_playing:
            log.info("Player is paused")
            self.controller.discard_current()
            return
        self._on_track_changed(TrackChanged(
            title=event.title,
            artist=event.artist,
            album=event.album,
            duration=event.duration,
            position=event.position,
        ))

    def _on_now_playing_completed(self, event: NowPlayingCompleted) -> None:
        self.controller.mark_now_playing(event.track, event.success)
        self.orchestrator.now_playing_done()
        # If we have any scrobbles in the queue, try to send them now
        if len(self.queue) > 0 and self.orchestrator.flush_job is None:
            self.orchestrator.start_flush()

    def _on_flush_completed(self, event: FlushCompleted) -> None:
        self.orchestrator.flush_done()
        if not event.success:
            log.info("Flush incomplete; %s scrobbles left for the next attempt", len(self.queue))

    def _update_display(self) -> None:
        if self.display is None:
            return
        with self.controller.lock:
            current = self.controller.current
            title, artist = (current.title, current.artist) if current else ("", "")
        try:
            self.display.on_track_changed(title, artist, None)
        except Exception as e:
            log.debug("Display update failed: %s", e)

    # -------- lifetime --------
    def stop_if_ready(self) -> bool:
        if self.stopped:
            return True
        if not self.policy.may_terminate():
            return False
        return self._try_stop()

    def shutdown(self) -> None:
        """Stop now regardless of outstanding work, persisting state. Idempotent."""
        self._try_stop(force=True)
        self.join()

    def _try_stop(self, force: bool = False) -> bool:
        with self._post_lock:
            if self.stopped:
                return True
            if not force and not self._inbox.empty():
                return False
            self.stopped = True
            if not self._inbox.empty():
                log.warning("Stopping with %s unhandled events", self._inbox.qsize())
            self.persist()
        if self._owns_executor:
            self.orchestrator.executor.shutdown(wait=False)
        log.info("Scrobbler service stopped")
        return True

    def persist(self) -> None:
        with self.controller.lock:
            current = self.controller.current.copy() if self.controller.current else None
            pending = self.queue.snapshot()
        self.store.save_current(current)
        self.store.save_queue(pending)
        log.debug("Persisted state (current=%s, queue=%s)", current is not None, len(pending))
