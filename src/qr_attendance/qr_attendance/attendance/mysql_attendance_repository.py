from __future__ import annotations

import json
from typing import Any, Dict, Sequence

from ..cheating.model import Violation
from ..core.enums import AttendanceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_json
from .model import AttendanceRecord
from .repository import AttendanceRepository

_SELECT = """
    SELECT a.id, a.session_id, a.student_name, a.email, a.ip_address, a.mac_address,
           a.latitude, a.longitude, a.timestamp, a.status, a.violations, a.synced
    FROM attendance a
"""


def _to_record(r: Dict[str, Any]) -> AttendanceRecord:
    return AttendanceRecord(
        record_id=int(r["id"]),
        session_id=str(r["session_id"]),
        student_name=r["student_name"],
        email=r["email"],
        ip_address=r.get("ip_address") or "",
        mac_address=r.get("mac_address") or "",
        latitude=r.get("latitude"),
        longitude=r.get("longitude"),
        timestamp=r["timestamp"],
        status=AttendanceStatus(r["status"]),
        violations=tuple(Violation.from_dict(v) for v in load_json(r.get("violations"), [])),
        synced=bool(r.get("synced")),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add_record(self, record: AttendanceRecord) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance(session_id, student_name, email, ip_address, mac_address,
                                       latitude, longitude, timestamp, status, violations, synced)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    record.session_id,
                    record.student_name,
                    record.email,
                    record.ip_address,
                    record.mac_address,
                    record.latitude,
                    record.longitude,
                    record.timestamp,
                    record.status.value,
                    json.dumps([v.to_dict() for v in record.violations]),
                    int(record.synced),
                ),
            )
            return int(cur.lastrowid)

    def mark_synced(self, record_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE attendance SET synced=1 WHERE id=%s", (int(record_id),))
            return cur.rowcount > 0

    def get_records_by_session(self, session_id: str) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE a.session_id=%s ORDER BY a.id", (session_id,))
            return [_to_record(r) for r in fetchall(cur)]

    def get_records_by_email(self, email: str) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE a.email=%s ORDER BY a.timestamp DESC", (email,))
            return [_to_record(r) for r in fetchall(cur)]

    def get_records_by_teacher(self, teacher_id: str) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + " JOIN sessions s ON s.id = a.session_id WHERE s.teacher_id=%s ORDER BY a.id",
                (teacher_id,),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def count_unsynced(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM attendance WHERE synced=0")
            row = fetchone(cur)
            return int(row["n"]) if row else 0
