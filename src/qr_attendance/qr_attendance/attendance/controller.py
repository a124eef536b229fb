from __future__ import annotations

import logging

from flask import Flask, g, jsonify, request

from ..common.http import client_ip, domain_error, json_error, teacher_required
from ..core.constants import SUBMISSION_ACK_MESSAGE
from ..core.exceptions import DomainError, ValidationError
from ..container import Container

logger = logging.getLogger(__name__)


def register(app: Flask, container: Container) -> None:
    teacher_only = teacher_required(container.teachers_repo)
    attendance = container.attendance_service

    @app.route("/api/attendance/submit", methods=["POST"], endpoint="submit_attendance")
    def submit_attendance():
        data = request.get_json(silent=True) or {}
        try:
            ack = attendance.submit(
                session_id=data.get("sessionId"),
                student_name=data.get("studentName"),
                email=data.get("email"),
                mac_address=data.get("macAddress"),
                lat=data.get("latitude"),
                lng=data.get("longitude"),
                source_ip=client_ip(),
            )
        except ValidationError as e:
            return json_error(str(e), 400)
        except Exception:
            # Students always see the same answer; the failure is in the log.
            logger.exception("Attendance submission failed")
            return jsonify({"success": True, "message": SUBMISSION_ACK_MESSAGE})
        return jsonify(ack.to_dict())

    @app.route("/api/attendance/session/<session_id>", methods=["GET"], endpoint="session_attendance")
    @teacher_only
    def session_attendance(session_id: str):
        try:
            container.session_service.get_owned_session(session_id, g.teacher.teacher_id)
        except DomainError as e:
            return domain_error(e)
        summary = attendance.session_summary(session_id)
        return jsonify({"success": True, **summary.to_dict()})

    @app.route("/api/attendance/student/<email>", methods=["GET"], endpoint="student_attendance")
    @teacher_only
    def student_attendance(email: str):
        try:
            records = attendance.student_history(email, g.teacher.teacher_id)
        except DomainError as e:
            return domain_error(e)
        return jsonify({"success": True, "total": len(records), "records": [r.to_dict() for r in records]})

    @app.route("/api/attendance/stats", methods=["GET"], endpoint="attendance_stats")
    @teacher_only
    def attendance_stats():
        try:
            stats = attendance.teacher_stats(g.teacher.teacher_id)
        except Exception:
            logger.exception("Failed to compute attendance stats")
            return json_error("Failed to compute statistics", 500)
        return jsonify({"success": True, "stats": stats})
