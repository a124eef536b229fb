from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import to_iso
from ..common.geo import GeoPoint
from ..core.enums import SessionType


@dataclass(frozen=True)
class Session:
    """Domain entity: one QR attendance session.

    ``spreadsheet_id``/``spreadsheet_url`` are attached after creation, once the
    background sheet setup has finished.
    """

    id: str
    teacher_id: str
    session_type: SessionType
    subject_name: str
    year: int
    section_or_group: str
    created_at: datetime
    expires_at: datetime
    classroom_location: Optional[GeoPoint] = None
    geofence_radius: Optional[int] = None
    spreadsheet_id: Optional[str] = None
    spreadsheet_url: Optional[str] = None
    drive_folder: Optional[str] = None
    attendance_url: Optional[str] = None
    is_active: bool = True
    attendee_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict:
        loc = self.classroom_location
        return {
            "id": self.id,
            "teacherId": self.teacher_id,
            "sessionType": self.session_type.value,
            "subjectName": self.subject_name,
            "year": self.year,
            "sectionOrGroup": self.section_or_group,
            "classroomLocation": {"lat": loc.lat, "lng": loc.lng} if loc else None,
            "geofenceRadius": self.geofence_radius,
            "spreadsheetId": self.spreadsheet_id,
            "spreadsheetUrl": self.spreadsheet_url,
            "driveFolder": self.drive_folder,
            "attendanceUrl": self.attendance_url,
            "createdAt": to_iso(self.created_at),
            "expiresAt": to_iso(self.expires_at),
            "isActive": self.is_active,
            "attendeeCount": self.attendee_count,
        }


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    session: Optional[Session] = None
    reason: str = ""
