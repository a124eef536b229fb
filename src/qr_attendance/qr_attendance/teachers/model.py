from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Teacher:
    """Domain entity: a teacher who owns QR sessions.

    Note: read-only here; accounts are provisioned by the auth layer.
    """

    teacher_id: str
    full_name: str
    email: str
    default_geofence_radius: Optional[int] = None
    violation_log_target: Optional[str] = None
