from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..common.geo import GeoPoint
from ..core.enums import SessionType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Session
from .repository import SessionRepository

_SELECT = """
    SELECT s.id, s.teacher_id, s.session_type, s.subject_name, s.year, s.section_or_group,
           s.classroom_lat, s.classroom_lng, s.geofence_radius, s.spreadsheet_id,
           s.spreadsheet_url, s.drive_folder, s.attendance_url, s.created_at, s.expires_at, s.is_active,
           (SELECT COUNT(*) FROM session_attendees a WHERE a.session_id = s.id) AS attendee_count
    FROM sessions s
"""

# Columns update_fields may touch, keyed by the Session attribute name.
_UPDATABLE = {
    "expires_at": "expires_at",
    "is_active": "is_active",
    "spreadsheet_id": "spreadsheet_id",
    "spreadsheet_url": "spreadsheet_url",
    "drive_folder": "drive_folder",
    "attendance_url": "attendance_url",
}


def _to_session(row: Dict[str, Any]) -> Session:
    lat, lng = row.get("classroom_lat"), row.get("classroom_lng")
    radius = row.get("geofence_radius")
    return Session(
        id=str(row["id"]),
        teacher_id=str(row["teacher_id"]),
        session_type=SessionType(row["session_type"]),
        subject_name=row["subject_name"],
        year=int(row["year"]),
        section_or_group=row["section_or_group"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        classroom_location=GeoPoint(float(lat), float(lng)) if lat is not None and lng is not None else None,
        geofence_radius=int(radius) if radius is not None else None,
        spreadsheet_id=row.get("spreadsheet_id"),
        spreadsheet_url=row.get("spreadsheet_url"),
        drive_folder=row.get("drive_folder"),
        attendance_url=row.get("attendance_url"),
        is_active=bool(row.get("is_active", True)),
        attendee_count=int(row.get("attendee_count") or 0),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add_session(self, session: Session) -> None:
        loc = session.classroom_location
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO sessions(id, teacher_id, session_type, subject_name, year, section_or_group,
                                     classroom_lat, classroom_lng, geofence_radius, spreadsheet_id,
                                     spreadsheet_url, drive_folder, attendance_url, created_at, expires_at,
                                     is_active)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    session.id,
                    session.teacher_id,
                    session.session_type.value,
                    session.subject_name,
                    session.year,
                    session.section_or_group,
                    loc.lat if loc else None,
                    loc.lng if loc else None,
                    session.geofence_radius,
                    session.spreadsheet_id,
                    session.spreadsheet_url,
                    session.drive_folder,
                    session.attendance_url,
                    session.created_at,
                    session.expires_at,
                    int(session.is_active),
                ),
            )

    def get_session(self, session_id: str) -> Optional[Session]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE s.id=%s", (session_id,))
            row = fetchone(cur)
            return _to_session(row) if row else None

    def update_fields(self, session_id: str, **fields) -> Optional[Session]:
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{_UPDATABLE[name]}=%s" for name in fields)
            params = [int(v) if isinstance(v, bool) else v for v in fields.values()]
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(f"UPDATE sessions SET {assignments} WHERE id=%s", (*params, session_id))
        return self.get_session(session_id)

    def deactivate_session(self, session_id: str, *, now: datetime) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE sessions SET is_active=0, deactivated_at=%s WHERE id=%s AND is_active=1",
                (now, session_id),
            )

    def deactivate_expired(self, *, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE sessions SET is_active=0, deactivated_at=%s WHERE is_active=1 AND expires_at < %s",
                (now, now),
            )
            return int(cur.rowcount or 0)

    def list_by_teacher(self, teacher_id: str, *, active_only: bool = False) -> Sequence[Session]:
        where = " WHERE s.teacher_id=%s"
        if active_only:
            where += " AND s.is_active=1"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + where + " ORDER BY s.created_at DESC", (teacher_id,))
            return [_to_session(r) for r in fetchall(cur)]

    def add_attendee(self, session_id: str, email: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT IGNORE INTO session_attendees(session_id, email) VALUES(%s,%s)",
                (session_id, email),
            )
            return cur.rowcount > 0

    def has_attendee(self, session_id: str, email: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS hit FROM session_attendees WHERE session_id=%s AND email=%s",
                (session_id, email),
            )
            return fetchone(cur) is not None
