from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Teacher
from .repository import TeacherRepository


class MySQLTeacherRepository(TeacherRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, teacher_id: str) -> Optional[Teacher]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT teacher_id, full_name, email, default_geofence_radius, violation_log_target
                FROM teachers
                WHERE teacher_id=%s
                """,
                (teacher_id,),
            )
            row = fetchone(cur)
            if not row:
                return None
            radius = row.get("default_geofence_radius")
            return Teacher(
                teacher_id=str(row["teacher_id"]),
                full_name=row["full_name"],
                email=row["email"],
                default_geofence_radius=int(radius) if radius is not None else None,
                violation_log_target=row.get("violation_log_target"),
            )

    def set_violation_log_target(self, teacher_id: str, target: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE teachers SET violation_log_target=%s WHERE teacher_id=%s",
                (target, teacher_id),
            )
            return cur.rowcount > 0
