"""Spreadsheet mirror interface.

The write queue treats every call here as an opaque awaitable; it knows
nothing about the transport behind it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

ATTENDANCE_WORKSHEET = "Attendance"
VIOLATIONS_WORKSHEET = "Violations"

ATTENDANCE_HEADER = ["#", "Student Name", "Email", "Status", "Time", "IP Address", "GPS Lat", "GPS Lng"]
VIOLATION_HEADER = ["#", "Student Name", "Email", "Violation Type", "Details", "Distance (m)", "IP Address", "Timestamp"]


@dataclass(frozen=True)
class SheetRef:
    spreadsheet_id: str
    url: str
    # Logical Drive location, e.g. "Attendance-2025-2026/Year-2/Group-A/TD".
    folder: Optional[str] = None


@dataclass(frozen=True)
class AttendanceRow:
    """Snapshot of one attendance record as it is written to the sheet."""

    timestamp: datetime
    student_name: str
    email: str
    status: str
    ip_address: str
    mac_address: str
    latitude: Optional[float]
    longitude: Optional[float]

    def cells(self, row_number: object) -> list:
        return [
            row_number,
            self.student_name,
            self.email,
            self.status,
            self.timestamp.strftime("%I:%M:%S %p"),
            self.ip_address,
            "N/A" if self.latitude is None else self.latitude,
            "N/A" if self.longitude is None else self.longitude,
        ]


@dataclass(frozen=True)
class ViolationRow:
    timestamp: datetime
    student_name: str
    email: str
    violation_type: str
    details: str
    distance: Optional[int]
    ip_address: str
    mac_address: str

    def cells(self, row_number: object) -> list:
        return [
            row_number,
            self.student_name,
            self.email,
            self.violation_type,
            self.details,
            "N/A" if self.distance is None else self.distance,
            self.ip_address,
            self.timestamp.strftime("%m/%d/%Y, %I:%M:%S %p"),
        ]


class MirrorClient(Protocol):
    async def create_attendance_sheet(
        self,
        title: str,
        *,
        subject: str,
        session_type: str,
        folder_path: Sequence[str] = (),
    ) -> SheetRef:
        raise NotImplementedError

    async def append_attendance_row(self, spreadsheet_id: str, row: AttendanceRow) -> None:
        raise NotImplementedError

    async def ensure_violation_log(self, title: str, *, owner: str) -> str:
        """Return the id of ``owner``'s violation log spreadsheet, creating it if needed.

        Each owner gets a separate spreadsheet; logs are never shared between teachers.
        """

        raise NotImplementedError

    async def append_violation_row(self, spreadsheet_id: str, row: ViolationRow) -> None:
        raise NotImplementedError


def header_rows(title: str, header: Sequence[str]) -> list[list]:
    return [[title] + [""] * (len(header) - 1), list(header)]
