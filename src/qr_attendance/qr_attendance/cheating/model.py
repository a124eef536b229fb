from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import to_iso
from ..core.enums import ViolationType


@dataclass(frozen=True)
class Violation:
    """One anti-cheat finding attached to an attendance record at creation."""

    type: ViolationType
    details: str
    distance: Optional[int] = None

    def to_dict(self) -> dict:
        return {"type": self.type.value, "details": self.details, "distance": self.distance}

    @classmethod
    def from_dict(cls, data: dict) -> "Violation":
        distance = data.get("distance")
        return cls(
            type=ViolationType(data["type"]),
            details=str(data.get("details") or ""),
            distance=int(distance) if distance is not None else None,
        )


@dataclass(frozen=True)
class ViolationLogEntry:
    """Row of the cheating log (one per violation, per student)."""

    session_id: str
    student_name: str
    email: str
    violation_type: ViolationType
    details: str
    distance: Optional[int]
    ip_address: str
    mac_address: str
    timestamp: datetime
    log_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.log_id,
            "sessionId": self.session_id,
            "studentName": self.student_name,
            "email": self.email,
            "violationType": self.violation_type.value,
            "details": self.details,
            "distance": self.distance,
            "ipAddress": self.ip_address,
            "macAddress": self.mac_address,
            "timestamp": to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class ViolationFilter:
    session_id: Optional[str] = None
    email: Optional[str] = None
    violation_type: Optional[ViolationType] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
