import hashlib
import logging
from dataclasses import dataclass

import pylast
import requests

from track import Rating, TrackSnapshot

log = logging.getLogger("lastfm")

API_ROOT = "https://ws.audioscrobbler.com/2.0/"
SIGNING_SKIP = {"format", "callback"}

# Custom error classes so callers can branch
class LastFMAuthError(Exception): ...
class LastFMRateLimitError(Exception): ...
class LastFMNetworkError(Exception): ...
class LastFMUnknownError(Exception): ...
# The request itself is invalid; retrying it can never succeed
class LastFMRejectedError(LastFMUnknownError): ...

# 2=Invalid service, 3=Invalid method, 5=Invalid format, 6=Invalid parameters, 7=Invalid resource
REJECTED_CODES = (2, 3, 5, 6, 7)


@dataclass(frozen=True)
class Session:
    """Opaque session credential; only the key is ever looked at."""
    key: str


def _map_ws_error(e: pylast.WSError) -> Exception:
    code = getattr(e, "status", None) or getattr(e, "code", None)
    try:
        code = int(code)
    except (TypeError, ValueError):
        pass
    msg = str(e)
    if code in (9, 4, 14):  # 9=Invalid session, 4=Auth failed, 14=Token expired
        return LastFMAuthError(msg)
    if code in (29,):  # 29=Rate limit exceeded
        return LastFMRateLimitError(msg)
    if code in REJECTED_CODES:
        return LastFMRejectedError(f"Last.fm rejected request (error {code}): {msg}")
    return LastFMUnknownError(f"Last.fm API error {code}: {msg}")


class LastFMClient:
    """Thin wrapper over pylast for now-playing, scrobbles and ratings."""

    def __init__(self, api_key: str, api_secret: str, session_key: str | None,
                 username: str | None, password_md5: str | None, timeout: int = 10):
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        if session_key:
            log.info("Using Last.fm session key auth")
            self.network = pylast.LastFMNetwork(
                api_key=api_key,
                api_secret=api_secret,
                session_key=session_key,
            )
        elif username and password_md5:
            log.info("Using Last.fm username + MD5 password auth")
            self.network = pylast.LastFMNetwork(
                api_key=api_key,
                api_secret=api_secret,
                username=username,
                password_hash=password_md5,
            )
        else:
            raise ValueError("Missing Last.fm credentials")

    @property
    def session(self) -> Session | None:
        key = getattr(self.network, "session_key", None)
        return Session(key) if key else None

    def update_now_playing(self, track: TrackSnapshot) -> bool:
        """Push a Now Playing update. Returns False instead of raising."""
        try:
            self.network.update_now_playing(
                artist=track.artist,
                title=track.title,
                album=track.album or None,
                duration=track.duration // 1000 or None,
            )
            return True
        except pylast.WSError as e:
            # NOW PLAYING failures aren't critical; log at DEBUG
            log.debug("update_now_playing failed: code=%s msg=%s", getattr(e, "status", "?"), e)
        except Exception as e:
            log.debug("update_now_playing network error: %s", e)
        return False

    def submit_scrobble(self, track: TrackSnapshot, start_time: int, rating: Rating) -> None:
        """Submit one queued play with its start timestamp (unix seconds)."""
        if rating is Rating.SKIPPED:
            # The 2.0 API has no skip submission; the marker is acknowledged and consumed
            log.info("Skip recorded: %s — %s", track.artist, track.title)
            return
        try:
            self.network.scrobble(
                artist=track.artist,
                title=track.title,
                timestamp=start_time,
                album=track.album or None,
                duration=track.duration // 1000 or None,
            )
        except pylast.WSError as e:
            raise _map_ws_error(e)
        except Exception as e:
            raise LastFMNetworkError(str(e))
        log.info("Scrobbled: %s — %s%s", track.artist, track.title,
                 f" [{track.album}]" if track.album else "")

    def love_track(self, artist: str, title: str, session_key: str) -> None:
        """pylast signs with the network's own session key; a different key is refused."""
        if session_key != getattr(self.network, "session_key", None):
            raise LastFMAuthError("session key does not match the Last.fm network session")
        try:
            self.network.get_track(artist, title).love()
        except pylast.WSError as e:
            raise _map_ws_error(e)
        except Exception as e:
            raise LastFMNetworkError(str(e))
        log.info("Loved: %s — %s", artist, title)

    def ban_track(self, artist: str, title: str, session_key: str) -> None:
        # pylast dropped track.ban, so sign and send the call ourselves
        self._signed_post("track.ban", {"artist": artist, "track": title, "sk": session_key})
        log.info("Banned: %s — %s", artist, title)

    def _sign(self, params: dict) -> str:
        items = sorted((k, v) for k, v in params.items() if k not in SIGNING_SKIP)
        raw = "".join(f"{k}{v}" for k, v in items) + self.api_secret
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    def _signed_post(self, method: str, params: dict) -> dict:
        params = dict(params, method=method, api_key=self.api_key)
        params["api_sig"] = self._sign(params)
        params["format"] = "json"
        try:
            resp = requests.post(API_ROOT, data=params, timeout=self.timeout)
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise LastFMNetworkError(str(e))
        if isinstance(body, dict) and "error" in body:
            code, msg = body.get("error"), body.get("message", "")
            if code in (9, 4, 14):
                raise LastFMAuthError(msg)
            if code == 29:
                raise LastFMRateLimitError(msg)
            if code in REJECTED_CODES:
                raise LastFMRejectedError(f"Last.fm rejected request (error {code}): {msg}")
            raise LastFMUnknownError(f"Last.fm API error {code}: {msg}")
        if resp.status_code >= 400:
            raise LastFMUnknownError(f"Last.fm HTTP {resp.status_code}")
        return body
