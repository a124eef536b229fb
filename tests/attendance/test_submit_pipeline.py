from __future__ import annotations

import asyncio
import threading
from datetime import timedelta

import pytest

from qr_attendance.attendance.service import AttendanceService
from qr_attendance.cheating.service import AntiCheatingService
from qr_attendance.common.geo import GeoPoint
from qr_attendance.core.enums import AttendanceStatus, SessionType, ViolationType
from qr_attendance.core.exceptions import ValidationError
from qr_attendance.sessions.service import SessionService
from qr_attendance.write_queue import KeyedConcurrentQueue

ACK = {"success": True, "message": "Attendance submitted successfully"}


@pytest.fixture
def build(sessions_repo, attendance_repo, violations_repo, teachers_repo, mirror):
    def _build(queue=None, *, with_mirror=True):
        sessions = SessionService(sessions_repo, client_url="http://localhost:3000")
        anti_cheat = AntiCheatingService(attendance_repo, violations_repo, default_radius=100)
        return AttendanceService(
            attendance_repo,
            sessions,
            teachers_repo,
            anti_cheat,
            mirror=mirror if with_mirror else None,
            queue=queue,
            default_radius=100,
            academic_year="2025-2026",
        )

    return _build


def _submit(service, now, *, session_id="s-1", email="lina@univ.example", name="Lina", ip="10.0.0.1", **extra):
    return service.submit(
        session_id=session_id,
        student_name=name,
        email=email,
        source_ip=ip,
        now=now,
        **extra,
    )


def test_double_submit_is_idempotent(build, sessions_repo, attendance_repo, make_session, fixed_now, classroom):
    sessions_repo.add_session(make_session())
    service = build()

    first = _submit(service, fixed_now, lat=classroom.lat, lng=classroom.lng)
    second = _submit(service, fixed_now + timedelta(seconds=5), lat=classroom.lat, lng=classroom.lng)

    assert first.to_dict() == ACK
    assert second.to_dict() == ACK
    assert len(attendance_repo.all()) == 1
    assert sessions_repo.get_session("s-1").attendee_count == 1


def test_unknown_inactive_and_expired_sessions_get_the_same_ack(
    build, sessions_repo, attendance_repo, make_session, fixed_now
):
    sessions_repo.add_session(make_session("s-closed", is_active=False))
    sessions_repo.add_session(make_session("s-old", expires_at=fixed_now - timedelta(minutes=1)))
    service = build()

    for session_id in ("s-missing", "s-closed", "s-old"):
        assert _submit(service, fixed_now, session_id=session_id).to_dict() == ACK

    assert attendance_repo.all() == []
    # Lazy expiry deactivates on read.
    assert sessions_repo.get_session("s-old").is_active is False


def test_malformed_input_is_rejected(build, sessions_repo, make_session, fixed_now):
    sessions_repo.add_session(make_session())
    service = build()

    with pytest.raises(ValidationError):
        _submit(service, fixed_now, email="not-an-email")
    with pytest.raises(ValidationError):
        _submit(service, fixed_now, name="  ")
    with pytest.raises(ValidationError):
        _submit(service, fixed_now, lat="91", lng="3.0")


def test_email_is_normalised_before_duplicate_check(build, sessions_repo, attendance_repo, make_session, fixed_now):
    sessions_repo.add_session(make_session())
    service = build()

    _submit(service, fixed_now, email="Lina@Univ.Example")
    _submit(service, fixed_now, email="lina@univ.example", ip="10.0.0.2")

    assert [r.email for r in attendance_repo.all()] == ["lina@univ.example"]


def test_no_coordinates_is_present_without_distance(build, sessions_repo, attendance_repo, make_session, fixed_now):
    sessions_repo.add_session(make_session())

    _submit(build(), fixed_now)

    record = attendance_repo.all()[0]
    assert record.status == AttendanceStatus.PRESENT
    assert record.violations == ()
    assert record.mac_address == "N/A"


def test_radius_falls_back_to_teacher_default_then_global(
    build, sessions_repo, attendance_repo, make_session, fixed_now, classroom
):
    # About 222 m from the classroom.
    lat, lng = classroom.lat + 0.002, classroom.lng
    sessions_repo.add_session(make_session("s-t2", teacher_id="t-2", geofence_radius=None))
    sessions_repo.add_session(make_session("s-t1", teacher_id="t-1", geofence_radius=None))
    service = build()

    _submit(service, fixed_now, session_id="s-t2", email="a@univ.example", ip="10.0.0.1", lat=lat, lng=lng)
    _submit(service, fixed_now, session_id="s-t1", email="b@univ.example", ip="10.0.0.2", lat=lat, lng=lng)

    statuses = {r.session_id: r.status for r in attendance_repo.all()}
    assert statuses == {"s-t2": AttendanceStatus.PRESENT, "s-t1": AttendanceStatus.FLAGGED}


def test_flagged_submission_logs_violations_but_ack_is_unchanged(
    build, sessions_repo, attendance_repo, violations_repo, make_session, fixed_now, classroom
):
    sessions_repo.add_session(make_session())
    service = build()

    ack = _submit(service, fixed_now, lat=classroom.lat + 0.01, lng=classroom.lng)

    record = attendance_repo.all()[0]
    assert ack.to_dict() == ACK
    assert record.status == AttendanceStatus.FLAGGED
    assert [v.type for v in record.violations] == [ViolationType.LOCATION]
    assert [e.violation_type for e in violations_repo.entries] == [ViolationType.LOCATION]


def test_mirror_enqueued_per_session_and_marks_synced(build, sessions_repo, attendance_repo, mirror, make_session, fixed_now):
    sessions_repo.add_session(make_session(spreadsheet_id="sheet-1"))

    loop_threads = []

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", retry_delay_ms=1)
        service = build(queue)
        _submit(service, fixed_now, email="lina@univ.example", ip="10.0.0.1")
        _submit(service, fixed_now, email="omar@univ.example", ip="10.0.0.2")
        # Persisted before the mirror ran.
        assert [r.synced for r in attendance_repo.all()] == [False, False]
        loop_threads.append(threading.get_ident())
        await asyncio.wait_for(queue.join(), timeout=2)
        return queue.stats()

    stats = asyncio.run(scenario())

    assert [c[2:] for c in mirror.finished("append_attendance_row")] == [
        ("sheet-1", "lina@univ.example"),
        ("sheet-1", "omar@univ.example"),
    ]
    assert all(r.synced for r in attendance_repo.all())
    assert stats["processed"] == 2
    # The store write happens off the event loop thread.
    assert len(attendance_repo.sync_threads) == 2
    assert loop_threads[0] not in attendance_repo.sync_threads


def test_permanent_mirror_failure_leaves_record_unsynced(
    build, sessions_repo, attendance_repo, mirror, make_session, fixed_now
):
    sessions_repo.add_session(make_session(spreadsheet_id="sheet-1"))
    mirror.always_fail.add("append_attendance_row")

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", retries=2, retry_delay_ms=1)
        ack = _submit(build(queue), fixed_now)
        await asyncio.wait_for(queue.join(), timeout=2)
        return ack, queue.stats()

    ack, stats = asyncio.run(scenario())

    assert ack.to_dict() == ACK
    assert stats["failed"] == 1
    assert len([c for c in mirror.calls if c[:2] == ("start", "append_attendance_row")]) == 3
    assert attendance_repo.count_unsynced() == 1


def test_transient_mirror_failure_is_retried(build, sessions_repo, attendance_repo, mirror, make_session, fixed_now):
    sessions_repo.add_session(make_session(spreadsheet_id="sheet-1"))
    mirror.fail_next["append_attendance_row"] = 1

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", retries=2, retry_delay_ms=1)
        _submit(build(queue), fixed_now)
        await asyncio.wait_for(queue.join(), timeout=2)

    asyncio.run(scenario())

    assert attendance_repo.count_unsynced() == 0


def test_no_spreadsheet_target_means_no_mirror_work(build, sessions_repo, attendance_repo, mirror, make_session, fixed_now):
    sessions_repo.add_session(make_session(spreadsheet_id=None))

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", retry_delay_ms=1)
        _submit(build(queue), fixed_now)
        await asyncio.wait_for(queue.join(), timeout=2)
        return queue.stats()

    stats = asyncio.run(scenario())

    assert mirror.calls == []
    assert stats == {"queued": 0, "active": 0, "lanes": 0, "processed": 0, "failed": 0}
    assert attendance_repo.all()[0].synced is False


def test_two_flagged_sessions_mirror_both_and_share_one_violation_log(
    build, sessions_repo, attendance_repo, teachers_repo, mirror, make_session, fixed_now, classroom
):
    far = GeoPoint(classroom.lat + 0.01, classroom.lng)
    sessions_repo.add_session(make_session("S1", spreadsheet_id="sheet-S1"))
    sessions_repo.add_session(make_session("S2", spreadsheet_id="sheet-S2", session_type=SessionType.LAB))
    mirror.delay = 0.01

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", concurrency=5, retry_delay_ms=1)
        service = build(queue)
        _submit(service, fixed_now, session_id="S1", email="a@univ.example", ip="10.0.0.1", lat=far.lat, lng=far.lng)
        _submit(service, fixed_now, session_id="S2", email="b@univ.example", ip="10.0.0.2", lat=far.lat, lng=far.lng)
        await asyncio.wait_for(queue.join(), timeout=2)
        return queue.stats()

    stats = asyncio.run(scenario())

    assert stats["failed"] == 0
    assert stats["processed"] == 4
    assert {c[2] for c in mirror.finished("append_attendance_row")} == {"sheet-S1", "sheet-S2"}
    # Same teacher, same lane: the log is created once and reused.
    assert len(mirror.finished("ensure_violation_log")) == 1
    assert [c[2:] for c in mirror.finished("append_violation_row")] == [
        ("log-Cheating Log 2025-2026-t-1", "a@univ.example"),
        ("log-Cheating Log 2025-2026-t-1", "b@univ.example"),
    ]
    assert teachers_repo.get_by_id("t-1").violation_log_target == "log-Cheating Log 2025-2026-t-1"
    assert all(r.synced for r in attendance_repo.all())


def test_each_teacher_gets_their_own_violation_log(
    build, sessions_repo, teachers_repo, mirror, make_session, fixed_now, classroom
):
    far = GeoPoint(classroom.lat + 0.01, classroom.lng)
    sessions_repo.add_session(make_session("S1", teacher_id="t-1", spreadsheet_id="sheet-S1"))
    sessions_repo.add_session(make_session("S2", teacher_id="t-2", spreadsheet_id="sheet-S2"))

    async def scenario():
        queue = KeyedConcurrentQueue(name="attendance", concurrency=5, retry_delay_ms=1)
        service = build(queue)
        _submit(service, fixed_now, session_id="S1", email="a@univ.example", ip="10.0.0.1", lat=far.lat, lng=far.lng)
        _submit(service, fixed_now, session_id="S2", email="b@univ.example", ip="10.0.0.2", lat=far.lat, lng=far.lng)
        await asyncio.wait_for(queue.join(), timeout=2)

    asyncio.run(scenario())

    first = teachers_repo.get_by_id("t-1").violation_log_target
    second = teachers_repo.get_by_id("t-2").violation_log_target
    assert first and second and first != second
    assert sorted(c[2:] for c in mirror.finished("append_violation_row")) == [
        (first, "a@univ.example"),
        (second, "b@univ.example"),
    ]


def test_session_summary_and_teacher_stats(build, sessions_repo, make_session, fixed_now, classroom):
    sessions_repo.add_session(make_session("s-1"))
    sessions_repo.add_session(make_session("s-2", session_type=SessionType.TD))
    service = build()

    _submit(service, fixed_now, session_id="s-1", email="a@univ.example", ip="10.0.0.1")
    _submit(service, fixed_now, session_id="s-1", email="b@univ.example", ip="10.0.0.1")
    _submit(service, fixed_now, session_id="s-2", email="a@univ.example", ip="10.0.0.3")

    summary = service.session_summary("s-1")
    stats = service.teacher_stats("t-1")

    assert (summary.total, summary.present, summary.flagged, summary.unsynced) == (2, 1, 1, 2)
    assert stats["totalSessions"] == 2
    assert stats["totalSubmissions"] == 3
    assert stats["uniqueStudents"] == 2
    assert stats["averageAttendance"] == 1.5
    assert stats["bySessionType"] == {
        "lecture": {"sessions": 1, "submissions": 2},
        "td": {"sessions": 1, "submissions": 1},
    }
