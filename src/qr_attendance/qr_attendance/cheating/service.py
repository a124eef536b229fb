from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..attendance.model import AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.geo import GeoPoint, distance_meters
from ..core.constants import (
    DEFAULT_GEOFENCE_RADIUS,
    DEFAULT_SUSPICIOUS_MIN_VIOLATIONS,
    NOT_AVAILABLE,
    RECENT_VIOLATIONS_LIMIT,
)
from ..core.enums import ViolationType
from .model import Violation, ViolationFilter, ViolationLogEntry
from .repository import ViolationRepository


@dataclass(frozen=True)
class LocationResult:
    valid: bool
    # None when the student sent no coordinates: unknown, not zero.
    distance: Optional[int]
    reason: str


@dataclass(frozen=True)
class DuplicateResult:
    is_duplicate: bool
    matches: Tuple[AttendanceRecord, ...] = ()
    reason: str = "No duplicates found"


@dataclass(frozen=True)
class CheckResult:
    location: LocationResult
    duplicate: DuplicateResult
    violations: Tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class SuspiciousStudent:
    email: str
    student_name: str
    count: int
    violations: Tuple[ViolationLogEntry, ...]

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "studentName": self.student_name,
            "count": self.count,
            "violations": [v.to_dict() for v in self.violations],
        }


def _known(value: Optional[str]) -> bool:
    return bool(value) and value != NOT_AVAILABLE


class AntiCheatingService:
    """Geofence and duplicate-device checks for attendance submissions."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        violations: ViolationRepository,
        *,
        default_radius: int = DEFAULT_GEOFENCE_RADIUS,
    ):
        self._attendance = attendance
        self._violations = violations
        self._default_radius = int(default_radius)

    def validate_location(
        self,
        student: Optional[GeoPoint],
        classroom: Optional[GeoPoint],
        radius: Optional[int] = None,
    ) -> LocationResult:
        if student is None:
            return LocationResult(False, None, "No location data")
        if classroom is None:
            return LocationResult(True, 0, "No classroom location configured")

        distance = distance_meters(student, classroom)
        limit = radius or self._default_radius
        if distance > limit:
            return LocationResult(False, distance, f"Student is {distance}m away (limit: {limit}m)")
        return LocationResult(True, distance, "Within geofence")

    def check_duplicate_device(self, session_id: str, ip_address: Optional[str], mac_address: Optional[str]) -> DuplicateResult:
        matches = tuple(
            r
            for r in self._attendance.get_records_by_session(session_id)
            if (_known(ip_address) and r.ip_address == ip_address)
            or (_known(mac_address) and r.mac_address == mac_address)
        )
        if not matches:
            return DuplicateResult(False)
        names = ", ".join(r.student_name for r in matches)
        return DuplicateResult(True, matches, f"Device already used by: {names}")

    def evaluate(
        self,
        *,
        session_id: str,
        ip_address: Optional[str],
        mac_address: Optional[str],
        student_location: Optional[GeoPoint],
        classroom_location: Optional[GeoPoint],
        radius: Optional[int],
    ) -> CheckResult:
        location = self.validate_location(student_location, classroom_location, radius)
        duplicate = self.check_duplicate_device(session_id, ip_address, mac_address)

        violations: List[Violation] = []
        # Missing coordinates are unverifiable, not a violation on their own.
        if not location.valid and location.distance is not None:
            violations.append(Violation(ViolationType.LOCATION, location.reason, location.distance))
        if duplicate.is_duplicate:
            violations.append(Violation(ViolationType.DUPLICATE_DEVICE, duplicate.reason, location.distance))

        return CheckResult(location=location, duplicate=duplicate, violations=tuple(violations))

    def log_violations(self, record: AttendanceRecord, result: CheckResult) -> List[ViolationLogEntry]:
        """Write the cheating-log entries for a flagged submission.

        Earlier submitters sharing the device get their own standalone entry;
        their attendance records are left as they were.
        """

        entries = [
            ViolationLogEntry(
                session_id=record.session_id,
                student_name=record.student_name,
                email=record.email,
                violation_type=v.type,
                details=v.details,
                distance=v.distance,
                ip_address=record.ip_address,
                mac_address=record.mac_address,
                timestamp=record.timestamp,
            )
            for v in result.violations
        ]
        for earlier in result.duplicate.matches:
            entries.append(
                ViolationLogEntry(
                    session_id=record.session_id,
                    student_name=earlier.student_name,
                    email=earlier.email,
                    violation_type=ViolationType.DUPLICATE_DEVICE,
                    details=f"Same device used by {record.student_name} ({record.email})",
                    distance=0,
                    ip_address=record.ip_address,
                    mac_address=record.mac_address,
                    timestamp=record.timestamp,
                )
            )

        for entry in entries:
            self._violations.log_violation(entry)
        return entries

    def list_violations(
        self,
        *,
        session_id: Optional[str] = None,
        email: Optional[str] = None,
        violation_type: Optional[ViolationType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[ViolationLogEntry]:
        return self._violations.list_violations(
            ViolationFilter(session_id=session_id, email=email, violation_type=violation_type, start=start, end=end)
        )

    def suspicious_students(
        self,
        *,
        min_violations: int = DEFAULT_SUSPICIOUS_MIN_VIOLATIONS,
        session_ids: Optional[Sequence[str]] = None,
    ) -> List[SuspiciousStudent]:
        logs = self._violations.list_violations(ViolationFilter())
        if session_ids is not None:
            allowed = set(session_ids)
            logs = [entry for entry in logs if entry.session_id in allowed]

        grouped: "OrderedDict[str, List[ViolationLogEntry]]" = OrderedDict()
        for entry in logs:
            grouped.setdefault(entry.email, []).append(entry)

        students = [
            SuspiciousStudent(email=email, student_name=entries[0].student_name, count=len(entries), violations=tuple(entries))
            for email, entries in grouped.items()
            if len(entries) >= min_violations
        ]
        students.sort(key=lambda s: s.count, reverse=True)
        return students

    def violation_stats(
        self,
        *,
        session_ids: Optional[Sequence[str]] = None,
        recent: int = RECENT_VIOLATIONS_LIMIT,
    ) -> dict:
        """Overview of logged violations, optionally limited to ``session_ids``.

        ``recentViolations`` holds the latest ``recent`` entries, newest first.
        """

        logs = list(self._violations.list_violations(ViolationFilter()))
        if session_ids is not None:
            allowed = set(session_ids)
            logs = [entry for entry in logs if entry.session_id in allowed]

        by_type = {}
        for entry in logs:
            by_type[entry.violation_type.value] = by_type.get(entry.violation_type.value, 0) + 1

        return {
            "totalViolations": len(logs),
            "uniqueStudentsFlagged": len({entry.email for entry in logs}),
            "byType": by_type,
            "recentViolations": [entry.to_dict() for entry in reversed(logs[-recent:])] if recent > 0 else [],
        }
