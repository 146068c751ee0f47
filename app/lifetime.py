"""
When may the scrobbler stop, and who starts it again.

The service is short-lived: it comes up when there is an event to handle,
persists its state and exits once nothing is in flight. ServiceHost plays the
role of the process supervisor, starting a fresh service (which reloads the
persisted state) for the next event.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable

log = logging.getLogger("lifetime")


class LifetimePolicy:
    def __init__(self, orchestrator):
        self.orchestrator = orchestrator

    def may_terminate(self) -> bool:
        return self.orchestrator.idle


class ServiceHost:
    def __init__(self, factory: Callable[[], object]):
        self.factory = factory
        self.service = None
        self.started = 0
        self._lock = threading.Lock()

    def deliver(self, event) -> None:
        with self._lock:
            if self.service is not None and self.service.post(event):
                return
            if self.service is not None:
                # Wait until the stopped instance has written its state
                self.service.join()
            self.service = self.factory()
            self.started += 1
            log.debug("Started scrobbler service #%s", self.started)
            self.service.start()
            self.service.post(event)

    def close(self) -> None:
        with self._lock:
            if self.service is not None:
                self.service.shutdown()
                self.service = None
