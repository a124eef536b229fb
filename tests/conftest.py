from __future__ import annotations

import asyncio
import threading
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from qr_attendance.attendance.model import AttendanceRecord
from qr_attendance.cheating.model import ViolationFilter, ViolationLogEntry
from qr_attendance.common.geo import GeoPoint
from qr_attendance.core.enums import SessionType
from qr_attendance.mirror.client import SheetRef
from qr_attendance.sessions.model import Session
from qr_attendance.teachers.model import Teacher


class FakeTeachersRepo:
    def __init__(self, *teachers: Teacher):
        self._teachers = {t.teacher_id: t for t in teachers}

    def get_by_id(self, teacher_id):
        return self._teachers.get(teacher_id)

    def set_violation_log_target(self, teacher_id, target):
        teacher = self._teachers.get(teacher_id)
        if not teacher:
            return False
        self._teachers[teacher_id] = replace(teacher, violation_log_target=target)
        return True


class FakeSessionsRepo:
    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._attendees: dict[str, set] = {}
        self.reads = 0

    def add_session(self, session):
        self._sessions[session.id] = session
        self._attendees.setdefault(session.id, set())

    def get_session(self, session_id):
        self.reads += 1
        session = self._sessions.get(session_id)
        if not session:
            return None
        return replace(session, attendee_count=len(self._attendees.get(session_id, ())))

    def update_fields(self, session_id, **fields):
        if session_id not in self._sessions:
            return None
        self._sessions[session_id] = replace(self._sessions[session_id], **fields)
        return self.get_session(session_id)

    def deactivate_session(self, session_id, *, now):
        if session_id in self._sessions:
            self._sessions[session_id] = replace(self._sessions[session_id], is_active=False)

    def deactivate_expired(self, *, now):
        changed = 0
        for sid, s in list(self._sessions.items()):
            if s.is_active and s.expires_at < now:
                self._sessions[sid] = replace(s, is_active=False)
                changed += 1
        return changed

    def list_by_teacher(self, teacher_id, *, active_only=False):
        rows = [
            self.get_session(s.id)
            for s in self._sessions.values()
            if s.teacher_id == teacher_id and (s.is_active or not active_only)
        ]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    def add_attendee(self, session_id, email):
        attendees = self._attendees.setdefault(session_id, set())
        if email in attendees:
            return False
        attendees.add(email)
        return True

    def has_attendee(self, session_id, email):
        return email in self._attendees.get(session_id, set())


class FakeAttendanceRepo:
    def __init__(self, sessions: FakeSessionsRepo | None = None):
        self._records: dict[int, AttendanceRecord] = {}
        self._next_id = 1
        self._sessions = sessions
        self.sync_threads: list[int] = []

    def add_record(self, record):
        for r in self._records.values():
            if r.session_id == record.session_id and r.email == record.email:
                raise ValueError("duplicate attendance record")
        rid = self._next_id
        self._next_id += 1
        self._records[rid] = replace(record, record_id=rid)
        return rid

    def mark_synced(self, record_id):
        self.sync_threads.append(threading.get_ident())
        if record_id not in self._records:
            return False
        self._records[record_id] = replace(self._records[record_id], synced=True)
        return True

    def get(self, record_id):
        return self._records[record_id]

    def all(self):
        return list(self._records.values())

    def get_records_by_session(self, session_id):
        return [r for r in self._records.values() if r.session_id == session_id]

    def get_records_by_email(self, email):
        return [r for r in self._records.values() if r.email == email]

    def get_records_by_teacher(self, teacher_id):
        owned = {s.id for s in self._sessions.list_by_teacher(teacher_id)} if self._sessions else set()
        return [r for r in self._records.values() if r.session_id in owned]

    def count_unsynced(self):
        return sum(1 for r in self._records.values() if not r.synced)


class FakeViolationsRepo:
    def __init__(self):
        self.entries: list[ViolationLogEntry] = []

    def log_violation(self, entry):
        self.entries.append(replace(entry, log_id=len(self.entries) + 1))
        return len(self.entries)

    def list_violations(self, filters: ViolationFilter):
        out = []
        for e in self.entries:
            if filters.session_id and e.session_id != filters.session_id:
                continue
            if filters.email and e.email != filters.email:
                continue
            if filters.violation_type and e.violation_type != filters.violation_type:
                continue
            if filters.start and e.timestamp < filters.start:
                continue
            if filters.end and e.timestamp > filters.end:
                continue
            out.append(e)
        return sorted(out, key=lambda e: e.timestamp)


class FakeMirror:
    """Records every call; ``fail_next`` makes the next N calls of a method raise."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_next: dict[str, int] = {}
        self.always_fail: set[str] = set()
        self.delay = 0.0

    async def _call(self, name, *args):
        self.calls.append(("start", name) + args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.always_fail:
            raise RuntimeError(f"{name} unavailable")
        if self.fail_next.get(name):
            self.fail_next[name] -= 1
            raise RuntimeError(f"{name} flaky")
        self.calls.append(("end", name) + args)

    def finished(self, name):
        return [c for c in self.calls if c[0] == "end" and c[1] == name]

    async def create_attendance_sheet(self, title, *, subject, session_type, folder_path=()):
        await self._call("create_attendance_sheet", title)
        return SheetRef(
            spreadsheet_id=f"sheet-{title}",
            url=f"https://sheets.example/{title}",
            folder="/".join(folder_path) or None,
        )

    async def append_attendance_row(self, spreadsheet_id, row):
        await self._call("append_attendance_row", spreadsheet_id, row.email)

    async def ensure_violation_log(self, title, *, owner):
        await self._call("ensure_violation_log", title, owner)
        return f"log-{title}-{owner}"

    async def append_violation_row(self, spreadsheet_id, row):
        await self._call("append_violation_row", spreadsheet_id, row.email)


CLASSROOM = GeoPoint(36.7538, 3.0588)


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def teacher():
    return Teacher(teacher_id="t-1", full_name="Amina Belkacem", email="amina@univ.example")


@pytest.fixture
def teachers_repo(teacher):
    return FakeTeachersRepo(
        teacher,
        Teacher(teacher_id="t-2", full_name="Karim Haddad", email="karim@univ.example", default_geofence_radius=250),
    )


@pytest.fixture
def sessions_repo():
    return FakeSessionsRepo()


@pytest.fixture
def attendance_repo(sessions_repo):
    return FakeAttendanceRepo(sessions_repo)


@pytest.fixture
def violations_repo():
    return FakeViolationsRepo()


@pytest.fixture
def classroom():
    return CLASSROOM


@pytest.fixture
def mirror():
    return FakeMirror()


@pytest.fixture
def make_session(fixed_now):
    def _make(session_id="s-1", **overrides) -> Session:
        fields = dict(
            id=session_id,
            teacher_id="t-1",
            session_type=SessionType.LECTURE,
            subject_name="Algorithms",
            year=2,
            section_or_group="G1",
            created_at=fixed_now - timedelta(minutes=5),
            expires_at=fixed_now + timedelta(minutes=10),
            classroom_location=CLASSROOM,
            geofence_radius=100,
        )
        fields.update(overrides)
        return Session(**fields)

    return _make
