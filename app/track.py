from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

log = logging.getLogger("track")

# Last.fm guideline: a track counts once half of it, or 4 minutes, has played.
PLAYED_FLOOR_SECS = 240


class Rating(str, Enum):
    NONE = ""
    LOVED = "L"
    BANNED = "B"
    SKIPPED = "S"


# -------------------------
# Immutable view handed to background jobs
# -------------------------
@dataclass(frozen=True)
class TrackSnapshot:
    title: str
    artist: str
    album: str
    duration: int  # milliseconds, 0 = unknown
    start_time: int
    track_auth: str
    rating: Rating


@dataclass
class TrackRecord:
    """One playback instance.

    Mutable only while it sits in the controller's "current" slot; the copy
    that goes into the pending queue is never touched again.
    """
    title: str = ""
    artist: str = ""
    album: str = ""
    duration: int = 0
    start_time: int = 0
    track_auth: str = ""
    rating: Rating = Rating.NONE
    posted_now_playing: bool = False

    @classmethod
    def start(cls, *, title: str | None, artist: str | None, album: str | None,
              duration: int | None, position: int | None, track_auth: str | None,
              now: float) -> "TrackRecord":
        """New record whose origin is back-dated by the reported position (ms)."""
        start_time = int(now)
        position_secs = int(position or 0) // 1000
        if position_secs > 0:
            start_time -= position_secs
        return cls(
            title=title or "",
            artist=artist or "",
            album=album or "",
            duration=max(0, int(duration or 0)),
            start_time=start_time,
            track_auth=track_auth or "",
        )

    def snapshot(self) -> TrackSnapshot:
        return TrackSnapshot(
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration=self.duration,
            start_time=self.start_time,
            track_auth=self.track_auth,
            rating=self.rating,
        )

    def copy(self) -> "TrackRecord":
        return dataclasses.replace(self)

    def describe(self) -> str:
        return f"{self.artist} — {self.title}" + (f" [{self.album}]" if self.album else "")

    # -------- serialization --------
    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "start_time": self.start_time,
            "track_auth": self.track_auth,
            "rating": self.rating.value,
            "posted_now_playing": self.posted_now_playing,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TrackRecord":
        if not isinstance(data, dict):
            raise ValueError(f"track record must be an object, got {type(data).__name__}")
        try:
            record = cls(
                title=_as_str(data["title"]),
                artist=_as_str(data["artist"]),
                album=_as_str(data.get("album", "")),
                duration=int(data.get("duration", 0)),
                start_time=int(data["start_time"]),
                track_auth=_as_str(data.get("track_auth", "")),
                rating=Rating(data.get("rating", "")),
                posted_now_playing=bool(data.get("posted_now_playing", False)),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed track record: {e!r}") from e
        if record.duration < 0:
            raise ValueError("track duration must not be negative")
        return record


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def is_played(elapsed: float, duration: int) -> bool:
    """Played once past half the duration (ms) or past the 240s floor."""
    return elapsed > duration / 2000 or elapsed > PLAYED_FLOOR_SECS


def finalize(record: TrackRecord, now: float) -> TrackRecord | None:
    """Classify a finished record.

    Returns the record when it should be submitted, None when it is discarded.
    A skip is only reported for tracks carrying a track-auth token, since the
    remote service ignores skip markers without one.
    """
    elapsed = int(now) - record.start_time
    played = is_played(elapsed, record.duration)
    if not played and record.rating is Rating.NONE and record.track_auth:
        record.rating = Rating.SKIPPED
    if played or record.rating is not Rating.NONE:
        return record
    log.debug("Discarding short unrated play: %s (elapsed=%ss)", record.describe(), elapsed)
    return None
