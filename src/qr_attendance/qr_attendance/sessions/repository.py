from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Session


class SessionRepository(Protocol):
    """Repository interface for QR sessions and their attendee sets."""

    def add_session(self, session: Session) -> None:
        raise NotImplementedError

    def get_session(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    def update_fields(self, session_id: str, **fields) -> Optional[Session]:
        """Update the given columns (expires_at, is_active, spreadsheet_id, ...)."""

        raise NotImplementedError

    def deactivate_session(self, session_id: str, *, now: datetime) -> None:
        raise NotImplementedError

    def deactivate_expired(self, *, now: datetime) -> int:
        raise NotImplementedError

    def list_by_teacher(self, teacher_id: str, *, active_only: bool = False) -> Sequence[Session]:
        raise NotImplementedError

    def add_attendee(self, session_id: str, email: str) -> bool:
        """Insert into the attendee set; False when already present."""

        raise NotImplementedError

    def has_attendee(self, session_id: str, email: str) -> bool:
        raise NotImplementedError
