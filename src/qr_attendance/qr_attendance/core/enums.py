from __future__ import annotations

from enum import Enum


class SessionType(str, Enum):
    """Kind of class meeting a QR session was generated for."""

    LECTURE = "lecture"
    TD = "td"
    LAB = "lab"


class AttendanceStatus(str, Enum):
    """Outcome stored on an attendance record."""

    PRESENT = "PRESENT"
    FLAGGED = "FLAGGED"


class ViolationType(str, Enum):
    LOCATION = "Location Violation"
    DUPLICATE_DEVICE = "Duplicate Device"
