from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ..cheating.model import Violation
from ..common.datetime_utils import to_iso
from ..core.constants import SUBMISSION_ACK_MESSAGE
from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one student's submission for one session.

    Immutable once stored; only the ``synced`` flag changes, through the write
    queue's success callback.
    """

    session_id: str
    student_name: str
    email: str
    ip_address: str
    mac_address: str
    latitude: Optional[float]
    longitude: Optional[float]
    timestamp: datetime
    status: AttendanceStatus
    violations: Tuple[Violation, ...] = field(default_factory=tuple)
    synced: bool = False
    record_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "sessionId": self.session_id,
            "studentName": self.student_name,
            "email": self.email,
            "ipAddress": self.ip_address,
            "macAddress": self.mac_address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": to_iso(self.timestamp),
            "status": self.status.value,
            "violations": [v.to_dict() for v in self.violations],
            "synced": self.synced,
        }


@dataclass(frozen=True)
class SubmissionAck:
    """What the student gets back, whatever actually happened.

    Invalid sessions, duplicates, PRESENT and FLAGGED all produce the same
    acknowledgment so the public endpoint cannot be used to enumerate sessions.
    """

    success: bool = True
    message: str = SUBMISSION_ACK_MESSAGE

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


@dataclass(frozen=True)
class SessionSummary:
    records: Tuple[AttendanceRecord, ...]
    total: int
    present: int
    flagged: int
    unsynced: int

    def to_dict(self) -> dict:
        return {
            "records": [r.to_dict() for r in self.records],
            "total": self.total,
            "present": self.present,
            "flagged": self.flagged,
            "unsynced": self.unsynced,
        }
