from __future__ import annotations

from datetime import datetime

from flask import Flask, g, jsonify, request

from ..common.http import domain_error, teacher_required
from ..common.validators import require_int_range
from ..core.enums import ViolationType
from ..core.exceptions import DomainError, ValidationError
from ..container import Container


def _parse_datetime(value, field_name: str):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO date or datetime") from None


def _parse_violation_type(value):
    if not value:
        return None
    try:
        return ViolationType(value)
    except ValueError:
        raise ValidationError("Unknown violation type") from None


def register(app: Flask, container: Container) -> None:
    teacher_only = teacher_required(container.teachers_repo)
    anti_cheat = container.anti_cheat_service
    sessions = container.session_service

    def _teacher_session_ids():
        return [s.id for s in sessions.list_for_teacher(g.teacher.teacher_id)]

    @app.route("/api/cheating/logs", methods=["GET"], endpoint="cheating_logs")
    @teacher_only
    def cheating_logs():
        args = request.args
        try:
            session_id = args.get("sessionId") or None
            if session_id:
                sessions.get_owned_session(session_id, g.teacher.teacher_id)
            logs = anti_cheat.list_violations(
                session_id=session_id,
                email=(args.get("email") or "").strip().lower() or None,
                violation_type=_parse_violation_type(args.get("type")),
                start=_parse_datetime(args.get("startDate"), "startDate"),
                end=_parse_datetime(args.get("endDate"), "endDate"),
            )
        except DomainError as e:
            return domain_error(e)

        if not session_id:
            owned = set(_teacher_session_ids())
            logs = [entry for entry in logs if entry.session_id in owned]
        return jsonify({"success": True, "count": len(logs), "logs": [entry.to_dict() for entry in logs]})

    @app.route("/api/cheating/suspicious", methods=["GET"], endpoint="suspicious_students")
    @teacher_only
    def suspicious_students():
        try:
            min_violations = require_int_range(
                request.args.get("minViolations", 3), "minViolations", minimum=1, maximum=1000
            )
        except DomainError as e:
            return domain_error(e)

        students = anti_cheat.suspicious_students(min_violations=min_violations, session_ids=_teacher_session_ids())
        return jsonify({"success": True, "students": [s.to_dict() for s in students]})

    @app.route("/api/cheating/stats", methods=["GET"], endpoint="cheating_stats")
    @teacher_only
    def cheating_stats():
        stats = anti_cheat.violation_stats(session_ids=_teacher_session_ids())
        return jsonify({"success": True, **stats})
