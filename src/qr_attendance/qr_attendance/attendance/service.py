from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, List, Optional

from ..cheating.service import AntiCheatingService, CheckResult
from ..common.datetime_utils import now_local
from ..common.geo import GeoPoint
from ..common.validators import optional_float, require_email, require_non_empty
from ..core.constants import DEFAULT_GEOFENCE_RADIUS, NOT_AVAILABLE
from ..core.enums import AttendanceStatus
from ..mirror.client import AttendanceRow, MirrorClient, ViolationRow
from ..sessions.model import Session
from ..sessions.service import SessionService
from ..teachers.model import Teacher
from ..teachers.repository import TeacherRepository
from ..write_queue import KeyedConcurrentQueue
from .model import AttendanceRecord, SessionSummary, SubmissionAck
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class AttendanceService:
    """Student submission pipeline plus the teacher-facing attendance reports."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionService,
        teachers: TeacherRepository,
        anti_cheat: AntiCheatingService,
        *,
        mirror: Optional[MirrorClient] = None,
        queue: Optional[KeyedConcurrentQueue] = None,
        default_radius: int = DEFAULT_GEOFENCE_RADIUS,
        academic_year: str = "",
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._teachers = teachers
        self._anti_cheat = anti_cheat
        self._mirror = mirror
        self._queue = queue
        self._default_radius = int(default_radius)
        self._academic_year = academic_year
        # Duplicate check, device check and insert must not interleave between workers.
        self._submit_lock = threading.Lock()

    def submit(
        self,
        *,
        session_id: Any,
        student_name: Any,
        email: Any,
        mac_address: Any = None,
        lat: Any = None,
        lng: Any = None,
        source_ip: Optional[str] = None,
        now: datetime | None = None,
    ) -> SubmissionAck:
        """Record one submission and always answer with the same acknowledgment.

        Only malformed input raises (``ValidationError``). Unknown, inactive or
        expired sessions and repeat submissions are dropped silently.
        """

        session_id = require_non_empty(session_id, "Session ID")
        student_name = require_non_empty(student_name, "Student name")
        email = require_email(email, "Email")
        latitude = optional_float(lat, "Latitude", minimum=-90.0, maximum=90.0)
        longitude = optional_float(lng, "Longitude", minimum=-180.0, maximum=180.0)
        mac = str(mac_address).strip() if mac_address and str(mac_address).strip() else NOT_AVAILABLE
        ip = source_ip or NOT_AVAILABLE
        now = now or now_local()

        check = self._sessions.is_session_valid(session_id, now=now)
        if not check.valid:
            logger.info("Submission for session %s ignored: %s", session_id, check.reason)
            return SubmissionAck()
        session = check.session

        with self._submit_lock:
            if self._sessions.has_student_submitted(session_id, email):
                logger.info("Repeat submission by %s for session %s ignored", email, session_id)
                return SubmissionAck()

            teacher = self._teachers.get_by_id(session.teacher_id)
            radius = (
                session.geofence_radius
                or (teacher.default_geofence_radius if teacher else None)
                or self._default_radius
            )
            student_location = GeoPoint(latitude, longitude) if latitude is not None and longitude is not None else None
            result = self._anti_cheat.evaluate(
                session_id=session_id,
                ip_address=ip,
                mac_address=mac,
                student_location=student_location,
                classroom_location=session.classroom_location,
                radius=radius,
            )

            record = AttendanceRecord(
                session_id=session_id,
                student_name=student_name,
                email=email,
                ip_address=ip,
                mac_address=mac,
                latitude=latitude,
                longitude=longitude,
                timestamp=now,
                status=AttendanceStatus.PRESENT if result.is_valid else AttendanceStatus.FLAGGED,
                violations=result.violations,
            )
            record = replace(record, record_id=self._attendance.add_record(record))
            self._sessions.add_attendee(session_id, email)

            if not result.is_valid:
                self._anti_cheat.log_violations(record, result)
                logger.warning(
                    "Flagged %s in session %s: %s",
                    email,
                    session_id,
                    ", ".join(v.type.value for v in result.violations),
                )

        self._schedule_mirror(session, teacher, record, result)
        return SubmissionAck()

    def _schedule_mirror(
        self,
        session: Session,
        teacher: Optional[Teacher],
        record: AttendanceRecord,
        result: CheckResult,
    ) -> None:
        if self._mirror is None or self._queue is None or not session.spreadsheet_id:
            return

        mirror = self._mirror
        attendance = self._attendance
        spreadsheet_id = session.spreadsheet_id
        record_id = record.record_id
        row = AttendanceRow(
            timestamp=record.timestamp,
            student_name=record.student_name,
            email=record.email,
            status=record.status.value,
            ip_address=record.ip_address,
            mac_address=record.mac_address,
            latitude=record.latitude,
            longitude=record.longitude,
        )

        async def mirror_attendance() -> None:
            await mirror.append_attendance_row(spreadsheet_id, row)

        def mark_synced() -> None:
            # Called on the loop thread; the store write runs in the default executor.
            future = asyncio.get_running_loop().run_in_executor(None, attendance.mark_synced, record_id)
            future.add_done_callback(report_sync_error)

        def report_sync_error(future: asyncio.Future) -> None:
            if not future.cancelled() and future.exception() is not None:
                logger.error("Could not mark record %s as synced: %s", record_id, future.exception())

        def report_failure(exc: BaseException) -> None:
            logger.error("Attendance row for %s (record %s) was not mirrored: %s", record.email, record_id, exc)

        self._queue.enqueue(
            mirror_attendance,
            f"attendance-{session.id}-{record.email}",
            session.id,
            on_success=mark_synced,
            on_failure=report_failure,
        )

        if result.is_valid or teacher is None:
            return

        teachers = self._teachers
        teacher_id = teacher.teacher_id
        known_target = teacher.violation_log_target
        log_title = f"Cheating Log {self._academic_year}".strip()
        violation_rows = [
            ViolationRow(
                timestamp=record.timestamp,
                student_name=record.student_name,
                email=record.email,
                violation_type=v.type.value,
                details=v.details,
                distance=v.distance,
                ip_address=record.ip_address,
                mac_address=record.mac_address,
            )
            for v in result.violations
        ]

        async def mirror_violations() -> None:
            target = known_target
            if not target:
                # An earlier task in this lane may have created the log already.
                current = await asyncio.to_thread(teachers.get_by_id, teacher_id)
                target = current.violation_log_target if current else None
            if not target:
                target = await mirror.ensure_violation_log(log_title, owner=teacher_id)
                await asyncio.to_thread(teachers.set_violation_log_target, teacher_id, target)
            for violation_row in violation_rows:
                await mirror.append_violation_row(target, violation_row)

        self._queue.enqueue(mirror_violations, f"violations-{record.email}", f"violations-{teacher_id}")

    def session_summary(self, session_id: str) -> SessionSummary:
        records = tuple(self._attendance.get_records_by_session(session_id))
        flagged = sum(1 for r in records if r.status == AttendanceStatus.FLAGGED)
        return SessionSummary(
            records=records,
            total=len(records),
            present=len(records) - flagged,
            flagged=flagged,
            unsynced=sum(1 for r in records if not r.synced),
        )

    def student_history(self, email: str, teacher_id: str) -> List[AttendanceRecord]:
        """Records of one student across the sessions ``teacher_id`` owns."""

        email = require_email(email, "Email")
        owned = {s.id for s in self._sessions.list_for_teacher(teacher_id)}
        return [r for r in self._attendance.get_records_by_email(email) if r.session_id in owned]

    def teacher_stats(self, teacher_id: str) -> dict:
        sessions = self._sessions.list_for_teacher(teacher_id)
        records = self._attendance.get_records_by_teacher(teacher_id)
        session_types = {s.id: s.session_type.value for s in sessions}

        by_type = {}
        for s in sessions:
            by_type.setdefault(s.session_type.value, {"sessions": 0, "submissions": 0})
            by_type[s.session_type.value]["sessions"] += 1
        for r in records:
            kind = session_types.get(r.session_id)
            if kind:
                by_type[kind]["submissions"] += 1

        flagged = sum(1 for r in records if r.status == AttendanceStatus.FLAGGED)
        return {
            "totalSessions": len(sessions),
            "totalSubmissions": len(records),
            "present": len(records) - flagged,
            "flagged": flagged,
            "uniqueStudents": len({r.email for r in records}),
            "averageAttendance": round(len(records) / len(sessions), 1) if sessions else 0,
            "bySessionType": by_type,
            "unsynced": sum(1 for r in records if not r.synced),
        }
