from __future__ import annotations

import asyncio
import io
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple

import qrcode

from ..common.datetime_utils import now_local
from ..common.geo import GeoPoint
from ..common.validators import require_int_range, require_non_empty
from ..core.constants import DEFAULT_QR_VALIDITY_MINUTES, MAX_EXTEND_MINUTES
from ..core.enums import SessionType
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..mirror.client import MirrorClient
from ..write_queue import KeyedConcurrentQueue
from .model import Session, SessionCheck
from .repository import SessionRepository

logger = logging.getLogger(__name__)


class SessionService:
    """QR session lifecycle: creation, lazy expiry, attendee tracking."""

    def __init__(
        self,
        sessions: SessionRepository,
        *,
        client_url: str,
        validity_minutes: int = DEFAULT_QR_VALIDITY_MINUTES,
        mirror: Optional[MirrorClient] = None,
        drive_queue: Optional[KeyedConcurrentQueue] = None,
        academic_year: str = "",
    ):
        self._sessions = sessions
        self._academic_year = academic_year
        self._client_url = client_url.rstrip("/")
        self._validity = timedelta(minutes=int(validity_minutes))
        self._mirror = mirror
        self._drive_queue = drive_queue

    def create_session(
        self,
        *,
        teacher_id: str,
        session_type: str,
        subject_name: str,
        year: object,
        section_or_group: str,
        classroom_location: Optional[GeoPoint] = None,
        geofence_radius: Optional[int] = None,
        now: datetime | None = None,
    ) -> Session:
        now = now or now_local()
        try:
            kind = SessionType(str(session_type).lower())
        except ValueError:
            raise ValidationError("Invalid session type") from None

        session_id = str(uuid.uuid4())
        session = Session(
            id=session_id,
            teacher_id=teacher_id,
            session_type=kind,
            subject_name=require_non_empty(subject_name, "Subject name"),
            year=require_int_range(year, "Year", minimum=1, maximum=5),
            section_or_group=require_non_empty(section_or_group, "Section or group"),
            created_at=now,
            expires_at=now + self._validity,
            classroom_location=classroom_location,
            geofence_radius=geofence_radius,
            attendance_url=f"{self._client_url}/attend/{session_id}",
        )
        self._sessions.add_session(session)
        logger.info("Session %s created by teacher %s (expires %s)", session.id, teacher_id, session.expires_at)

        self._schedule_sheet_setup(session)
        return session

    def _schedule_sheet_setup(self, session: Session) -> None:
        """Create the session's spreadsheet in the background and link it."""

        if self._mirror is None or self._drive_queue is None:
            return

        mirror = self._mirror
        sessions = self._sessions
        session_id = session.id
        title = f"{session.subject_name}_{session.session_type.value.upper()}_{session.created_at:%Y-%m-%d}"
        subject = session.subject_name
        kind = session.session_type.value
        folder_path = self.folder_path(session)

        async def setup_sheet() -> None:
            ref = await mirror.create_attendance_sheet(title, subject=subject, session_type=kind, folder_path=folder_path)
            await asyncio.to_thread(
                sessions.update_fields,
                session_id,
                spreadsheet_id=ref.spreadsheet_id,
                spreadsheet_url=ref.url,
                drive_folder=ref.folder or "/".join(folder_path),
            )

        self._drive_queue.enqueue(setup_sheet, f"drive-setup-{session_id}", session_id)

    def folder_path(self, session: Session) -> Tuple[str, ...]:
        """Drive layout: lectures under the section, TD and lab under the group."""

        root = f"Attendance-{self._academic_year}" if self._academic_year else "Attendance"
        year = f"Year-{session.year}"
        if session.session_type == SessionType.LECTURE:
            return (root, year, f"Section-{session.section_or_group}", "Lectures")
        return (root, year, f"Group-{session.section_or_group}", session.session_type.value.upper())

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get_session(session_id)

    def get_owned_session(self, session_id: str, teacher_id: str) -> Session:
        session = self._sessions.get_session(session_id)
        if not session:
            raise NotFoundError("Session not found")
        if session.teacher_id != teacher_id:
            raise AuthorizationError("Forbidden: session belongs to another teacher", status_code=403)
        return session

    def is_session_valid(self, session_id: str, *, now: datetime | None = None) -> SessionCheck:
        session = self._sessions.get_session(session_id)
        if not session:
            return SessionCheck(False, reason="Session not found")
        if not session.is_active:
            return SessionCheck(False, reason="Session is no longer active")
        now = now or now_local()
        if session.is_expired(now):
            self._sessions.deactivate_session(session_id, now=now)
            return SessionCheck(False, reason="Session has expired")
        return SessionCheck(True, session=session)

    def deactivate_session(self, session_id: str, *, now: datetime | None = None) -> None:
        self._sessions.deactivate_session(session_id, now=now or now_local())

    def deactivate_expired(self, *, now: datetime | None = None) -> int:
        changed = self._sessions.deactivate_expired(now=now or now_local())
        if changed:
            logger.info("Deactivated %d expired session(s)", changed)
        return changed

    def extend_session(self, session_id: str, additional_minutes: object) -> Optional[Session]:
        minutes = require_int_range(additional_minutes, "additionalMinutes", minimum=1, maximum=MAX_EXTEND_MINUTES)
        session = self._sessions.get_session(session_id)
        if not session:
            return None
        return self._sessions.update_fields(
            session_id,
            expires_at=session.expires_at + timedelta(minutes=minutes),
            is_active=True,
        )

    def add_attendee(self, session_id: str, email: str) -> bool:
        return self._sessions.add_attendee(session_id, email)

    def has_student_submitted(self, session_id: str, email: str) -> bool:
        return self._sessions.has_attendee(session_id, email)

    def list_for_teacher(self, teacher_id: str, *, active_only: bool = False) -> Sequence[Session]:
        if active_only:
            # Expire stale ones first so the "active" list does not lie.
            self.deactivate_expired()
        return self._sessions.list_by_teacher(teacher_id, active_only=active_only)

    def qr_payload(self, session: Session) -> str:
        url = session.attendance_url or f"{self._client_url}/attend/{session.id}"
        return json.dumps({"sessionId": session.id, "url": url})

    def render_qr_png(self, session: Session) -> bytes:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=2,
        )
        qr.add_data(self.qr_payload(session))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

