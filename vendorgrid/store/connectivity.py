"""Background network connectivity monitor."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Poll a reachability check and notify subscribers on transitions."""

    def __init__(self, check: Callable[[], bool], interval: float = 15.0):
        """Initialize the monitor.

        Args:
            check: Returns True when the remote store is reachable.
            interval: Seconds between checks.
        """
        self._check = check
        self._interval = interval
        self._subscribers: list[Callable[[bool], None]] = []
        self._online: bool | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_online(self) -> bool | None:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> None:
        self._subscribers.append(callback)

    def check(self) -> bool:
        """Check once and notify subscribers if the state changed."""
        try:
            online = bool(self._check())
        except Exception as e:
            logger.debug(f"Connectivity check failed: {e}")
            online = False

        if online != self._online:
            previous = self._online
            self._online = online
            # The first check only notifies when offline
            if previous is not None or not online:
                logger.info(f"Network {'online' if online else 'offline'}")
                for callback in list(self._subscribers):
                    callback(online)
        return online

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self.check()
            self._stop.wait(self._interval)
