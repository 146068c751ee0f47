"""Configuration via environment variables."""

from __future__ import annotations
import os
from dataclasses import dataclass


def _bool(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    lastfm_api_key: str | None
    lastfm_api_secret: str | None
    lastfm_session_key: str | None
    lastfm_username: str | None
    lastfm_password_md5: str | None

    bluos_host: str = "127.0.0.1"
    bluos_port: int = 11000
    poll_interval: int = 3

    connectivity_url: str = "https://ws.audioscrobbler.com/2.0/"
    connectivity_interval: int = 30

    data_dir: str = "/data"
    queue_limit: int = 200
    scrobble_music_player: bool = True

    now_playing_webhook_url: str | None = None
    notify_webhook_url: str | None = None
    notify_min_level: str = "WARNING"
    app_tag: str = "Scrobbler"
    log_level: str = "INFO"

    def validate(self) -> None:
        # Validate Last.fm configuration up-front for clear errors
        if not self.lastfm_api_key or not self.lastfm_api_secret:
            raise SystemExit("LASTFM_API_KEY and LASTFM_API_SECRET are required")
        if not (self.lastfm_session_key or (self.lastfm_username and self.lastfm_password_md5)):
            raise SystemExit("Provide LASTFM_SESSION_KEY or LASTFM_USERNAME + LASTFM_PASSWORD_MD5")
        if self.queue_limit < 1:
            raise SystemExit("SCROBBLE_QUEUE_LIMIT must be at least 1")


def from_env(env=None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        lastfm_api_key=env.get("LASTFM_API_KEY"),
        lastfm_api_secret=env.get("LASTFM_API_SECRET"),
        lastfm_session_key=env.get("LASTFM_SESSION_KEY"),
        lastfm_username=env.get("LASTFM_USERNAME"),
        lastfm_password_md5=env.get("LASTFM_PASSWORD_MD5"),
        bluos_host=env.get("BLUOS_HOST", "127.0.0.1"),
        bluos_port=int(env.get("BLUOS_PORT", "11000")),
        poll_interval=max(1, int(env.get("POLL_INTERVAL", "3"))),
        connectivity_url=env.get("CONNECTIVITY_URL", "https://ws.audioscrobbler.com/2.0/"),
        connectivity_interval=max(1, int(env.get("CONNECTIVITY_INTERVAL", "30"))),
        data_dir=env.get("SCROBBLER_DATA_DIR", "/data"),
        queue_limit=int(env.get("SCROBBLE_QUEUE_LIMIT", "200")),
        scrobble_music_player=_bool(env.get("SCROBBLE_MUSIC_PLAYER"), True),
        now_playing_webhook_url=env.get("NOW_PLAYING_WEBHOOK_URL") or None,
        notify_webhook_url=env.get("NOTIFY_WEBHOOK_URL") or None,
        notify_min_level=env.get("NOTIFY_MIN_LEVEL", "WARNING"),
        app_tag=env.get("APP_TAG", "Scrobbler"),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
