"""
Now-playing display sinks.

The service only needs something with on_track_changed(title, artist, artwork);
empty strings mean nothing is playing. Artwork is passed through untouched.
"""

from __future__ import annotations
import base64
import logging
from typing import Protocol

import requests

log = logging.getLogger("display")


class TrackDisplay(Protocol):
    def on_track_changed(self, title: str, artist: str, artwork: bytes | None) -> None: ...


class LogDisplay:
    def __init__(self):
        self.last: tuple[str, str] | None = None

    def on_track_changed(self, title: str, artist: str, artwork: bytes | None) -> None:
        if (title, artist) == self.last:
            return
        self.last = (title, artist)
        if title or artist:
            log.info("Display: %s — %s", artist, title)
        else:
            log.info("Display: idle")


class WebhookDisplay:
    """POSTs now-playing changes as JSON. Best-effort: failures are logged only."""

    def __init__(self, url: str, app_tag: str = "Scrobbler", timeout: int = 5):
        self.url = url.strip()
        self.app_tag = app_tag
        self.timeout = timeout
        self.last: tuple[str, str] | None = None

    def on_track_changed(self, title: str, artist: str, artwork: bytes | None) -> None:
        if (title, artist) == self.last:
            return
        self.last = (title, artist)
        payload = {
            "source": self.app_tag,
            "title": title,
            "artist": artist,
            "artwork": base64.b64encode(artwork).decode("ascii") if artwork else None,
        }
        try:
            requests.post(self.url, json=payload, timeout=self.timeout)
        except Exception as e:
            log.debug("Display webhook failed: %s", e)


def from_settings(settings) -> TrackDisplay:
    if settings.now_playing_webhook_url:
        return WebhookDisplay(settings.now_playing_webhook_url, app_tag=settings.app_tag)
    return LogDisplay()
