from __future__ import annotations

from typing import Protocol, Sequence

from .model import AttendanceRecord


class AttendanceRepository(Protocol):
    def add_record(self, record: AttendanceRecord) -> int:
        raise NotImplementedError

    def mark_synced(self, record_id: int) -> bool:
        raise NotImplementedError

    def get_records_by_session(self, session_id: str) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def get_records_by_email(self, email: str) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def get_records_by_teacher(self, teacher_id: str) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def count_unsynced(self) -> int:
        raise NotImplementedError
