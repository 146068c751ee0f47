import logging

import requests

from events import ConnectivityChanged

log = logging.getLogger("connectivity")


class ConnectivityMonitor:
    """Probes the Last.fm endpoint and reports transitions online/offline."""

    def __init__(self, url: str, timeout: int = 5):
        self.url = url
        self.timeout = timeout
        self.connected: bool | None = None

    def check(self) -> bool:
        try:
            requests.head(self.url, timeout=self.timeout, allow_redirects=True)
            return True
        except requests.RequestException as e:
            log.debug("Connectivity probe failed: %s", e)
            return False

    def poll(self) -> ConnectivityChanged | None:
        connected = self.check()
        if connected == self.connected:
            return None
        self.connected = connected
        log.info("Connectivity: %s", "online" if connected else "offline")
        return ConnectivityChanged(connected=connected)
