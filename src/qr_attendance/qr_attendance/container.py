from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .cheating.mysql_violation_repository import MySQLViolationRepository
from .cheating.repository import ViolationRepository
from .cheating.service import AntiCheatingService
from .core.constants import (
    DEFAULT_GEOFENCE_RADIUS,
    DEFAULT_JANITOR_INTERVAL_SECONDS,
    DEFAULT_QR_VALIDITY_MINUTES,
    DEFAULT_QUEUE_CONCURRENCY,
    DEFAULT_QUEUE_MAX_SIZE,
    DEFAULT_QUEUE_RETRIES,
    DEFAULT_QUEUE_RETRY_DELAY_MS,
    DEFAULT_SESSION_CACHE_TTL_SECONDS,
)
from .database.connection import DBConfig, DatabaseConnection
from .database.mysql_base import table_counts
from .mirror.client import MirrorClient
from .mirror.gspread_client import GspreadMirrorClient
from .sessions.cache import CachedSessionRepository
from .sessions.janitor import SessionJanitor
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionService
from .system.service import HealthService
from .teachers.mysql_teacher_repository import MySQLTeacherRepository
from .teachers.repository import TeacherRepository
from .write_queue import BackgroundLoop, KeyedConcurrentQueue

STORE_TABLES = ("teachers", "sessions", "attendance", "cheating_logs")


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    teachers_repo: TeacherRepository
    sessions_repo: SessionRepository
    attendance_repo: AttendanceRepository
    violations_repo: ViolationRepository
    mirror: Optional[MirrorClient]

    background_loop: BackgroundLoop
    drive_queue: KeyedConcurrentQueue
    attendance_queue: KeyedConcurrentQueue

    session_service: SessionService
    anti_cheat_service: AntiCheatingService
    attendance_service: AttendanceService
    health_service: HealthService
    janitor: SessionJanitor

    @property
    def queues(self) -> tuple:
        return (self.drive_queue, self.attendance_queue)


def _queue(name: str, settings: Any, loop: BackgroundLoop) -> KeyedConcurrentQueue:
    return KeyedConcurrentQueue(
        name=name,
        concurrency=getattr(settings, "QUEUE_CONCURRENCY", DEFAULT_QUEUE_CONCURRENCY),
        max_size=getattr(settings, "QUEUE_MAX_SIZE", DEFAULT_QUEUE_MAX_SIZE),
        retries=getattr(settings, "QUEUE_RETRIES", DEFAULT_QUEUE_RETRIES),
        retry_delay_ms=getattr(settings, "QUEUE_RETRY_DELAY_MS", DEFAULT_QUEUE_RETRY_DELAY_MS),
        loop=loop.loop,
    )


def wire_container(
    settings: Any,
    *,
    conn: Optional[DatabaseConnection],
    teachers_repo: TeacherRepository,
    sessions_repo: SessionRepository,
    attendance_repo: AttendanceRepository,
    violations_repo: ViolationRepository,
    mirror: Optional[MirrorClient],
    store_counts=None,
) -> Container:
    """Assemble services over the given stores; tests pass in-memory fakes."""

    background_loop = BackgroundLoop()
    drive_queue = _queue("drive", settings, background_loop)
    attendance_queue = _queue("attendance", settings, background_loop)

    default_radius = int(getattr(settings, "DEFAULT_GEOFENCE_RADIUS", DEFAULT_GEOFENCE_RADIUS))
    cached_sessions = CachedSessionRepository(
        sessions_repo,
        ttl_seconds=float(getattr(settings, "SESSION_CACHE_TTL_SECONDS", DEFAULT_SESSION_CACHE_TTL_SECONDS)),
    )
    session_service = SessionService(
        cached_sessions,
        client_url=str(getattr(settings, "CLIENT_URL", "http://localhost:3000")),
        validity_minutes=int(getattr(settings, "QR_CODE_VALIDITY_MINUTES", DEFAULT_QR_VALIDITY_MINUTES)),
        mirror=mirror,
        drive_queue=drive_queue,
        academic_year=str(getattr(settings, "ACADEMIC_YEAR", "")),
    )
    anti_cheat_service = AntiCheatingService(attendance_repo, violations_repo, default_radius=default_radius)
    attendance_service = AttendanceService(
        attendance_repo,
        session_service,
        teachers_repo,
        anti_cheat_service,
        mirror=mirror,
        queue=attendance_queue,
        default_radius=default_radius,
        academic_year=str(getattr(settings, "ACADEMIC_YEAR", "")),
    )

    def _store_counts() -> dict:
        counts = dict(store_counts()) if store_counts else {}
        counts["unsynced"] = attendance_repo.count_unsynced()
        return counts

    health_service = HealthService(
        {"drive": drive_queue, "attendance": attendance_queue},
        _store_counts,
    )
    janitor = SessionJanitor(
        session_service,
        interval_seconds=float(getattr(settings, "SESSION_JANITOR_INTERVAL_SECONDS", DEFAULT_JANITOR_INTERVAL_SECONDS)),
    )

    return Container(
        conn=conn,
        teachers_repo=teachers_repo,
        sessions_repo=cached_sessions,
        attendance_repo=attendance_repo,
        violations_repo=violations_repo,
        mirror=mirror,
        background_loop=background_loop,
        drive_queue=drive_queue,
        attendance_queue=attendance_queue,
        session_service=session_service,
        anti_cheat_service=anti_cheat_service,
        attendance_service=attendance_service,
        health_service=health_service,
        janitor=janitor,
    )


def build_container(settings: Any) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(getattr(settings, "DB_CONFIG")))

    return wire_container(
        settings,
        conn=conn,
        teachers_repo=MySQLTeacherRepository(conn),
        sessions_repo=MySQLSessionRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        violations_repo=MySQLViolationRepository(conn),
        mirror=GspreadMirrorClient.from_settings(settings),
        store_counts=lambda: table_counts(conn, STORE_TABLES),
    )
