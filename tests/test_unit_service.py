"""Unit tests for the scrobbler service: event handling, background jobs, lifetime."""

from unittest.mock import MagicMock

import pytest

from conftest import FakeClient, InlineExecutor, ManualExecutor
from events import (
    Ban, ConnectivityChanged, Love, PlaybackFinished, PlayerStateResult, TrackChanged,
)
from service import ScrobblerService
from track import Rating, TrackRecord


def changed(title, **kw):
    fields = dict(title=title, artist="Y", album="Z", duration=180000, position=0, track_auth="")
    fields.update(kw)
    return TrackChanged(**fields)


def queued(title, rating=Rating.NONE, start_time=1_600_000_000):
    return TrackRecord(title=title, artist="Y", album="Z", duration=180000,
                       start_time=start_time, rating=rating)


@pytest.fixture
def make_service(client, store, clock):
    def make(executor=None, **kw):
        kw.setdefault("display", MagicMock())
        return ScrobblerService(kw.pop("client", client), store,
                                executor=executor or InlineExecutor(), clock=clock, **kw)
    return make


class TestNowPlaying:
    def test_track_change_announces_now_playing(self, make_service, client):
        svc = make_service()
        svc.handle(changed("X"))
        assert [t.title for t in client.now_playing] == ["X"]
        svc.run_pending()
        assert svc.orchestrator.now_playing_job is None

    def test_successful_now_playing_sets_flag(self, make_service, store):
        svc = make_service()
        svc.post(changed("X"))
        svc.run_pending()
        # nothing else in flight, so the service stopped and saved the current track
        assert svc.stopped
        assert store.load_current().posted_now_playing is True

    def test_failed_now_playing_leaves_flag_clear(self, make_service, client, store):
        client.now_playing_result = False
        svc = make_service()
        svc.post(changed("X"))
        svc.run_pending()
        assert store.load_current().posted_now_playing is False

    def test_now_playing_is_single_flight(self, make_service, client):
        executor = ManualExecutor()
        svc = make_service(executor)
        svc.handle(changed("A"))
        svc.handle(changed("B"))
        assert len(executor.jobs) == 1
        assert svc.orchestrator.start_now_playing(svc.controller.current) is False

    def test_now_playing_gets_snapshot(self, make_service, client):
        executor = ManualExecutor()
        svc = make_service(executor)
        svc.handle(changed("X"))
        svc.handle(Love())
        executor.run_all()
        assert client.now_playing[0].rating is Rating.NONE


class TestFlush:
    def test_flush_submits_in_finalization_order(self, make_service, client, clock, store):
        svc = make_service()
        for title in "ABC":
            svc.handle(changed(title))
            clock.advance(200)
        svc.handle(PlaybackFinished())
        svc.run_pending()
        assert [t.title for t, _, _ in client.submitted] == ["A", "B", "C"]
        assert svc.stopped
        assert store.load_queue() == []
        assert store.load_current() is None

    def test_flush_submits_start_time_and_rating(self, make_service, client, store):
        store.save_queue([queued("A", start_time=123), queued("S", rating=Rating.SKIPPED)])
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        svc.run_pending()
        (a, a_start, a_rating), (s, _, s_rating) = client.submitted
        assert (a.title, a_start, a_rating) == ("A", 123, Rating.NONE)
        assert s_rating is Rating.SKIPPED

    def test_loved_and_banned_entries_rated_before_submit(self, make_service, client, store):
        store.save_queue([queued("L", Rating.LOVED), queued("B", Rating.BANNED)])
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        assert client.calls == [
            ("love", "L", "sk-test"),
            ("submit", "L", "L"),
            ("ban", "B", "sk-test"),
            ("submit", "B", "B"),
        ]

    def test_failure_aborts_and_keeps_remaining_entries(self, make_service, client, store):
        store.save_queue([queued("A"), queued("B"), queued("C")])
        client.fail_submit_at = 2
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        svc.run_pending()
        assert [t.title for t, _, _ in client.submitted] == ["A"]
        assert [r.title for r in store.load_queue()] == ["B", "C"]

    def test_rejected_ban_still_submits_and_reaches_later_entries(self, make_service, client, store):
        from lastfm_client import LastFMRejectedError

        def refuse(*args):
            raise LastFMRejectedError("Last.fm rejected request (error 3): Invalid Method")

        client.ban_track = refuse
        store.save_queue([queued("A", Rating.BANNED), queued("B")])
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        svc.run_pending()
        assert [(t.title, r) for t, _, r in client.submitted] == [("A", Rating.BANNED), ("B", Rating.NONE)]
        assert store.load_queue() == []

    def test_rejected_scrobble_is_consumed(self, make_service, client, store):
        from lastfm_client import LastFMRejectedError
        submit = client.submit_scrobble

        def reject_blank_artist(track, start_time, rating):
            if not track.artist:
                raise LastFMRejectedError("Last.fm rejected request (error 6): Invalid parameters")
            submit(track, start_time, rating)

        client.submit_scrobble = reject_blank_artist
        blank = queued("A")
        blank.artist = ""
        store.save_queue([blank, queued("B")])
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        svc.run_pending()
        assert [t.title for t, _, _ in client.submitted] == ["B"]
        assert store.load_queue() == []

    def test_entries_removed_after_forced_stop_are_not_resent(self, make_service, client, store):
        store.save_queue([queued("A")])
        executor = ManualExecutor()
        svc = make_service(executor)
        svc.handle(ConnectivityChanged(True))
        svc.handle(ConnectivityChanged(False))
        assert [r.title for r in store.load_queue()] == ["A"]
        # the flush finishes after the service already stopped
        executor.run_all()
        svc.join()
        assert [t.title for t, _, _ in client.submitted] == ["A"]
        assert store.load_queue() == []

    def test_flush_is_single_flight(self, make_service, store):
        store.save_queue([queued("A")])
        executor = ManualExecutor()
        svc = make_service(executor)
        svc.handle(ConnectivityChanged(True))
        assert svc.orchestrator.flush_job is not None
        assert svc.orchestrator.start_flush() is False
        svc.handle(ConnectivityChanged(True))
        assert len(executor.jobs) == 1

    def test_now_playing_completion_triggers_flush(self, make_service, client, clock):
        svc = make_service()
        svc.handle(changed("A"))
        clock.advance(200)
        svc.handle(PlaybackFinished())
        assert client.submitted == []
        svc.handle(changed("B"))
        svc.run_pending()
        assert [t.title for t, _, _ in client.submitted] == ["A"]

    def test_auth_failure_raises_alert(self, client, store, clock):
        from lastfm_client import LastFMAuthError

        def refuse(*args):
            raise LastFMAuthError("Invalid session key")

        client.submit_scrobble = refuse
        alert = MagicMock()
        store.save_queue([queued("A")])
        svc = ScrobblerService(client, store, executor=InlineExecutor(), clock=clock, alert=alert)
        svc.handle(ConnectivityChanged(True))
        svc.run_pending()
        assert alert.call_args[0][0] == "ERROR"
        assert len(store.load_queue()) == 1


class TestRatings:
    def test_love_with_no_track_is_harmless(self, make_service, store):
        store.save_queue([queued("A")])
        svc = make_service(ManualExecutor())
        svc.handle(Love())
        svc.handle(Ban())
        assert svc.queue.peek().rating is Rating.NONE
        assert svc.stopped

    def test_love_then_finish_queues_loved(self, make_service, clock):
        svc = make_service(ManualExecutor())
        svc.handle(changed("X"))
        svc.handle(Love())
        clock.advance(10)
        svc.handle(PlaybackFinished())
        assert svc.queue.peek().rating is Rating.LOVED


class TestConnectivity:
    def test_restored_retries_unposted_now_playing(self, make_service, client, store):
        store.save_current(queued("X"))
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        assert [t.title for t in client.now_playing] == ["X"]

    def test_restored_does_not_repost_confirmed_track(self, make_service, client, store):
        track = queued("X")
        track.posted_now_playing = True
        store.save_current(track)
        svc = make_service()
        svc.handle(ConnectivityChanged(True))
        assert client.now_playing == []

    def test_lost_stops_and_persists(self, make_service, store):
        store.save_queue([queued("A")])
        svc = make_service(ManualExecutor())
        svc.handle(ConnectivityChanged(True))
        assert not svc.stopped
        svc.handle(ConnectivityChanged(False))
        assert svc.stopped
        assert [r.title for r in store.load_queue()] == ["A"]
        assert svc.post(PlaybackFinished()) is False


class TestPlayerState:
    def test_playing_synthesizes_track_change(self, make_service, client, clock):
        svc = make_service(ManualExecutor())
        svc.handle(PlayerStateResult(is_playing=True, position=60_000, duration=200_000,
                                     title="X", artist="Y"))
        assert svc.controller.current.title == "X"
        assert svc.controller.current.start_time == clock.now - 60

    def test_paused_discards_current(self, make_service, store):
        store.save_current(queued("X"))
        svc = make_service()
        svc.handle(PlayerStateResult(is_playing=False))
        assert svc.stopped
        assert store.load_current() is None

    def test_disabled_player_scrobbling_discards_current(self, make_service, store):
        store.save_current(queued("X"))
        svc = make_service(scrobble_music_player=False)
        svc.handle(PlayerStateResult(is_playing=True, title="Y", artist="Z"))
        assert svc.controller.current is None


class TestLifetime:
    def test_restart_restores_state(self, make_service, store, clock):
        svc = make_service(ManualExecutor())
        svc.handle(changed("A"))
        clock.advance(200)
        svc.handle(changed("B", track_auth="t"))
        current = svc.controller.current.copy()
        svc.shutdown()

        again = make_service(ManualExecutor())
        assert again.controller.current == current
        assert [r.title for r in again.queue.snapshot()] == ["A"]

    def test_does_not_stop_while_job_outstanding(self, make_service):
        executor = ManualExecutor()
        svc = make_service(executor)
        svc.handle(changed("A"))
        assert not svc.stopped
        assert svc.stop_if_ready() is False
        executor.run_all()
        svc.run_pending()
        assert svc.stopped

    def test_stop_is_idempotent(self, make_service, store):
        svc = make_service()
        svc.handle(PlaybackFinished())
        assert svc.stopped
        assert svc.stop_if_ready() is True
        svc.shutdown()
        assert store.load_current() is None

    def test_events_after_stop_are_ignored(self, make_service):
        svc = make_service()
        svc.handle(PlaybackFinished())
        svc.handle(changed("X"))
        assert svc.controller.current is None

    def test_no_session_fails_fast(self, store, clock):
        svc = ScrobblerService(FakeClient(session_key=None), store,
                               executor=InlineExecutor(), clock=clock)
        svc.handle(changed("X"))
        assert svc.controller.current is None
        assert svc.stopped

    def test_no_client_keeps_persisted_state(self, store, clock):
        store.save_queue([queued("A")])
        svc = ScrobblerService(None, store, executor=InlineExecutor(), clock=clock)
        svc.handle(ConnectivityChanged(True))
        assert svc.stopped
        assert [r.title for r in store.load_queue()] == ["A"]


class TestDisplay:
    def test_display_follows_current_track(self, make_service):
        display = MagicMock()
        svc = make_service(ManualExecutor(), display=display)
        svc.handle(changed("X"))
        display.on_track_changed.assert_called_with("X", "Y", None)
        svc.handle(PlaybackFinished())
        display.on_track_changed.assert_called_with("", "", None)
