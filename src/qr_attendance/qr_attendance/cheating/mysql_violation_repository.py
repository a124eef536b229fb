from __future__ import annotations

from typing import Sequence

from ..core.enums import ViolationType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .model import ViolationFilter, ViolationLogEntry
from .repository import ViolationRepository


class MySQLViolationRepository(ViolationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def log_violation(self, entry: ViolationLogEntry) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO cheating_logs(session_id, student_name, email, violation_type, details,
                                          distance, ip_address, mac_address, timestamp)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    entry.session_id,
                    entry.student_name,
                    entry.email,
                    entry.violation_type.value,
                    entry.details,
                    entry.distance,
                    entry.ip_address,
                    entry.mac_address,
                    entry.timestamp,
                ),
            )
            return int(cur.lastrowid)

    def list_violations(self, filters: ViolationFilter) -> Sequence[ViolationLogEntry]:
        clauses = ["1=1"]
        params: list[object] = []

        if filters.session_id:
            clauses.append("session_id=%s")
            params.append(filters.session_id)
        if filters.email:
            clauses.append("email=%s")
            params.append(filters.email)
        if filters.violation_type:
            clauses.append("violation_type=%s")
            params.append(filters.violation_type.value)
        if filters.start:
            clauses.append("timestamp >= %s")
            params.append(filters.start)
        if filters.end:
            clauses.append("timestamp <= %s")
            params.append(filters.end)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT id, session_id, student_name, email, violation_type, details, distance,
                       ip_address, mac_address, timestamp
                FROM cheating_logs
                WHERE {' AND '.join(clauses)}
                ORDER BY timestamp, id
                """,
                tuple(params),
            )
            return [
                ViolationLogEntry(
                    log_id=int(r["id"]),
                    session_id=str(r["session_id"]),
                    student_name=r["student_name"],
                    email=r["email"],
                    violation_type=ViolationType(r["violation_type"]),
                    details=r.get("details") or "",
                    distance=int(r["distance"]) if r.get("distance") is not None else None,
                    ip_address=r.get("ip_address") or "",
                    mac_address=r.get("mac_address") or "",
                    timestamp=r["timestamp"],
                )
                for r in fetchall(cur)
            ]
