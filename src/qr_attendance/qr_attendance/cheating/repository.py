from __future__ import annotations

from typing import Protocol, Sequence

from .model import ViolationFilter, ViolationLogEntry


class ViolationRepository(Protocol):
    def log_violation(self, entry: ViolationLogEntry) -> int:
        raise NotImplementedError

    def list_violations(self, filters: ViolationFilter) -> Sequence[ViolationLogEntry]:
        raise NotImplementedError
