import logging
import requests
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from events import PlaybackFinished, PlayerStateResult, TrackChanged

log = logging.getLogger("bluos")

PLAYING_STATES = ("play", "stream")
# A position jump backwards larger than this on the same track means it restarted
REWIND_SECS = 30


@dataclass
class BluOSStatus:
    title: str | None
    artist: str | None
    album: str | None
    duration: int | None  # seconds
    secs: int | None      # elapsed seconds
    state: str | None     # 'play', 'pause', 'stop', 'stream'

    @property
    def is_playing(self) -> bool:
        return self.state in PLAYING_STATES and bool(self.artist and self.title)


class BluOSClient:
    """
    Minimal BluOS client that fetches and parses /Status (XML).
    Uses recursive lookup + tag fallbacks (name/title1, artist, album, secs, totlen, state).
    """
    def __init__(self, host: str, port: int = 11000, timeout: int = 5):
        self.base = f"http://{host}:{port}"
        self.timeout = timeout

    def _findtext_any(self, root: ET.Element, *tags: str):
        for t in tags:
            el = root.find(f".//{t}")
            if el is not None and el.text:
                return el.text.strip()
        return None

    def _to_int(self, s):
        if s is None: return None
        try:
            return int(float(s))
        except ValueError:
            return None

    def parse_status(self, text: str) -> BluOSStatus | None:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            log.debug("Unparseable /Status body: %s", e)
            return None

        state = self._findtext_any(root, "state", "status", "mode")
        return BluOSStatus(
            title=self._findtext_any(root, "name", "title1", "title", "song"),
            artist=self._findtext_any(root, "artist", "title2"),
            album=self._findtext_any(root, "album", "title3"),
            duration=self._to_int(self._findtext_any(root, "totlen", "duration", "total", "trackLength", "length")),
            secs=self._to_int(self._findtext_any(root, "secs", "elapsed", "position", "time")),
            state=state.lower() if state else None,
        )

    def get_status(self) -> BluOSStatus | None:
        try:
            resp = requests.get(f"{self.base}/Status", timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.debug("BluOS status fetch failed: %s", e)
            return None
        return self.parse_status(resp.text)


class PlaybackWatcher:
    """Turns successive player statuses into scrobbler events."""

    def __init__(self):
        self.identity: tuple | None = None
        self.secs = 0

    @staticmethod
    def _identity(status: BluOSStatus) -> tuple:
        return (status.artist, status.title, status.album, status.duration)

    def initial_query(self, status: BluOSStatus | None) -> PlayerStateResult:
        """Startup check for a track that was already playing before we came up."""
        if status is None or not status.is_playing:
            return PlayerStateResult(is_playing=False)
        self.identity = self._identity(status)
        self.secs = status.secs or 0
        return PlayerStateResult(
            is_playing=True,
            position=(status.secs or 0) * 1000,
            duration=(status.duration or 0) * 1000,
            title=status.title,
            artist=status.artist,
            album=status.album,
        )

    def poll(self, status: BluOSStatus | None) -> list:
        if status is None:
            return []
        events = []
        secs = status.secs or 0
        if status.is_playing:
            identity = self._identity(status)
            restarted = identity == self.identity and secs + REWIND_SECS < self.secs
            if identity != self.identity or restarted:
                events.append(TrackChanged(
                    title=status.title,
                    artist=status.artist,
                    album=status.album,
                    duration=(status.duration or 0) * 1000,
                    position=secs * 1000,
                ))
                self.identity = identity
            self.secs = secs
        elif status.state == "stop" and self.identity is not None:
            events.append(PlaybackFinished())
            self.identity = None
            self.secs = 0
        return events
