"""
Alert webhook.

- POSTs {level, title, message, extra} as JSON to NOTIFY_WEBHOOK_URL.
- Drops anything below NOTIFY_MIN_LEVEL (default WARNING).
- Best-effort: a failed delivery is logged at DEBUG and never raised.
"""

from __future__ import annotations
import logging
import requests

_LEVELS = {
    "DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50
}

log = logging.getLogger("notifier")


class Notifier:
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING", app_tag: str = "Scrobbler",
                 timeout: int = 5):
        self.webhook_url = webhook_url.strip() if webhook_url else None
        self.min_level = _LEVELS.get(min_level.upper(), 30)
        self.app_tag = app_tag
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def wants(self, level: str) -> bool:
        return self.enabled and _LEVELS.get(level.upper(), 30) >= self.min_level

    def send(self, level: str, title: str, message: str, extra: dict | None = None) -> bool:
        if not self.wants(level):
            return False
        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return True
        except Exception as e:
            log.debug("Notification send failed: %s", e)
            return False


def from_settings(settings) -> Notifier:
    return Notifier(
        webhook_url=settings.notify_webhook_url,
        min_level=settings.notify_min_level,
        app_tag=settings.app_tag,
    )
