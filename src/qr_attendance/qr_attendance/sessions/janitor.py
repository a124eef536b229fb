from __future__ import annotations

import logging
import threading
from typing import Optional

from .service import SessionService

logger = logging.getLogger(__name__)


class SessionJanitor:
    """Periodically deactivates expired sessions.

    Reads already expire sessions lazily; this sweep keeps the "active" flag
    honest for sessions nobody touches any more.
    """

    def __init__(self, sessions: SessionService, *, interval_seconds: float):
        self._sessions = sessions
        self._interval = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._interval <= 0 or (self._thread and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="session-janitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self._interval + 1)
            self._thread = None

    def run_once(self) -> int:
        try:
            return self._sessions.deactivate_expired()
        except Exception:
            logger.exception("Session janitor sweep failed")
            return 0

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()
