from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..core.constants import DEFAULT_SESSION_CACHE_TTL_SECONDS
from .model import Session
from .repository import SessionRepository


class CachedSessionRepository(SessionRepository):
    """Read-through TTL cache in front of a SessionRepository.

    Hot path: every attendance submission reads its session. Writes go straight
    to the inner repository and drop the cached entry.
    """

    def __init__(
        self,
        inner: SessionRepository,
        *,
        ttl_seconds: float = DEFAULT_SESSION_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._inner = inner
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Optional[Session]]] = {}
        self._lock = threading.Lock()

    def invalidate(self, session_id: Optional[str] = None) -> None:
        with self._lock:
            if session_id is None:
                self._entries.clear()
            else:
                self._entries.pop(session_id, None)

    def get_session(self, session_id: str) -> Optional[Session]:
        now = self._clock()
        with self._lock:
            hit = self._entries.get(session_id)
        if hit and now - hit[0] < self._ttl:
            return hit[1]

        session = self._inner.get_session(session_id)
        # Misses are not cached: a freshly created session must be visible at once.
        if session is not None:
            with self._lock:
                self._entries[session_id] = (now, session)
        return session

    def add_session(self, session: Session) -> None:
        self._inner.add_session(session)
        self.invalidate(session.id)

    def update_fields(self, session_id: str, **fields) -> Optional[Session]:
        updated = self._inner.update_fields(session_id, **fields)
        self.invalidate(session_id)
        return updated

    def deactivate_session(self, session_id: str, *, now: datetime) -> None:
        self._inner.deactivate_session(session_id, now=now)
        self.invalidate(session_id)

    def deactivate_expired(self, *, now: datetime) -> int:
        changed = self._inner.deactivate_expired(now=now)
        if changed:
            self.invalidate()
        return changed

    def list_by_teacher(self, teacher_id: str, *, active_only: bool = False) -> Sequence[Session]:
        return self._inner.list_by_teacher(teacher_id, active_only=active_only)

    def add_attendee(self, session_id: str, email: str) -> bool:
        added = self._inner.add_attendee(session_id, email)
        self.invalidate(session_id)
        return added

    def has_attendee(self, session_id: str, email: str) -> bool:
        return self._inner.has_attendee(session_id, email)
