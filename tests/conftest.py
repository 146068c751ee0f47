import sys
from concurrent.futures import Future
from pathlib import Path

import pytest

# Modules live flat under app/
app_dir = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(app_dir))

from hypothesis import settings

from lastfm_client import LastFMNetworkError, Session
from store import StateStore

settings.register_profile("fast", max_examples=50, deadline=None)
settings.register_profile("thorough", max_examples=1000, deadline=None)
settings.load_profile("fast")


class InlineExecutor:
    """Runs submitted jobs immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


class ManualExecutor:
    """Holds submitted jobs until run_all() is called."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((fn, args, kwargs, future))
        return future

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for fn, args, kwargs, future in jobs:
            future.set_result(fn(*args, **kwargs))

    def shutdown(self, wait=True):
        pass


class FakeClient:
    """Stands in for LastFMClient; records every call in order."""

    def __init__(self, session_key="sk-test"):
        self._session = Session(session_key) if session_key else None
        self.now_playing_result = True
        self.fail_submit_at = None  # 1-based index of the submit call that fails
        self.calls = []
        self.now_playing = []
        self.submitted = []

    @property
    def session(self):
        return self._session

    def update_now_playing(self, track):
        self.calls.append(("now_playing", track.title))
        self.now_playing.append(track)
        return self.now_playing_result

    def submit_scrobble(self, track, start_time, rating):
        if self.fail_submit_at is not None and len(self.submitted) + 1 == self.fail_submit_at:
            self.fail_submit_at = None
            raise LastFMNetworkError("connection reset")
        self.calls.append(("submit", track.title, rating.value))
        self.submitted.append((track, start_time, rating))

    def love_track(self, artist, title, session_key):
        self.calls.append(("love", title, session_key))

    def ban_track(self, artist, title, session_key):
        self.calls.append(("ban", title, session_key))


class Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, secs):
        self.now += secs


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def store(tmp_path):
    return StateStore(str(tmp_path / "state"))
