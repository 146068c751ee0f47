"""Events consumed by the scrobbler service, external and internal."""

from __future__ import annotations
from dataclasses import dataclass

from track import TrackRecord


# -------------------------
# From the player / host
# -------------------------
@dataclass(frozen=True)
class TrackChanged:
    title: str | None
    artist: str | None
    album: str | None = None
    duration: int = 0       # ms
    position: int = 0       # ms
    track_auth: str = ""


@dataclass(frozen=True)
class PlaybackFinished:
    pass


@dataclass(frozen=True)
class Love:
    pass


@dataclass(frozen=True)
class Ban:
    pass


@dataclass(frozen=True)
class ConnectivityChanged:
    connected: bool


@dataclass(frozen=True)
class PlayerStateResult:
    """Answer to "is the player already playing?" asked at startup."""
    is_playing: bool
    position: int = 0       # ms
    duration: int = 0       # ms
    title: str | None = None
    artist: str | None = None
    album: str | None = None


# -------------------------
# Background job completions
# -------------------------
@dataclass(frozen=True)
class NowPlayingCompleted:
    track: TrackRecord
    success: bool


@dataclass(frozen=True)
class FlushCompleted:
    success: bool
    submitted: int = 0
