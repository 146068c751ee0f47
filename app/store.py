"""
On-disk state for the scrobbler.

Two JSON files under the data directory:
- current_track.json: the track playing when the service last stopped (absent if none)
- queue.json:         pending scrobbles in submission order (absent if empty)

Loading never fails: a missing, unreadable or corrupt file yields empty state.
"""

from __future__ import annotations
import json
import logging
import os
from typing import Any, List

from track import TrackRecord

FORMAT_VERSION = 1
CURRENT_TRACK_FILE = "current_track.json"
QUEUE_FILE = "queue.json"

log = logging.getLogger("store")


class StateStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.current_path = os.path.join(data_dir, CURRENT_TRACK_FILE)
        self.queue_path = os.path.join(data_dir, QUEUE_FILE)

    # -------- load --------
    def load_current(self) -> TrackRecord | None:
        data = self._read(self.current_path)
        if data is None:
            return None
        try:
            _check_version(data)
            return TrackRecord.from_dict(data["track"])
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Ignoring corrupt current track file %s: %s", self.current_path, e)
            return None

    def load_queue(self) -> List[TrackRecord]:
        data = self._read(self.queue_path)
        if data is None:
            return []
        try:
            _check_version(data)
            tracks = data["tracks"]
            if not isinstance(tracks, list):
                raise ValueError("tracks must be a list")
            return [TrackRecord.from_dict(item) for item in tracks]
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Ignoring corrupt queue file %s: %s", self.queue_path, e)
            return []

    def _read(self, path: str) -> Any:
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Unable to read %s: %s", path, e)
            return None

    # -------- save --------
    def save_current(self, record: TrackRecord | None) -> bool:
        if record is None:
            self._remove(self.current_path)
            return True
        return self._write(self.current_path, {"version": FORMAT_VERSION, "track": record.to_dict()},
                           what="current track")

    def save_queue(self, records: List[TrackRecord]) -> bool:
        if not records:
            self._remove(self.queue_path)
            return True
        payload = {"version": FORMAT_VERSION, "tracks": [r.to_dict() for r in records]}
        return self._write(self.queue_path, payload, what="queue")

    def _write(self, path: str, payload: dict, *, what: str) -> bool:
        # Write atomically; on any failure leave no file behind rather than a partial one
        tmp = f"{path}.tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp, path)
            return True
        except (OSError, TypeError, ValueError) as e:
            log.error("Unable to save %s state to %s: %s", what, path, e)
            self._remove(tmp)
            self._remove(path)
            return False

    def _remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.error("Unable to remove stale state file %s: %s", path, e)


def _check_version(data: Any) -> None:
    if not isinstance(data, dict):
        raise ValueError("state file must hold an object")
    version = data.get("version")
    if version != FORMAT_VERSION:
        raise ValueError(f"unsupported state version {version!r}")
