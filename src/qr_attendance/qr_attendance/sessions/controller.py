from __future__ import annotations

import logging

from flask import Flask, Response, g, jsonify, request

from ..common.geo import GeoPoint
from ..common.http import domain_error, json_error, teacher_required
from ..common.validators import optional_float, optional_positive_int
from ..core.exceptions import DomainError, ValidationError
from ..container import Container

logger = logging.getLogger(__name__)


def _classroom_location(data: dict):
    raw = data.get("classroomLocation")
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("classroomLocation must be an object with lat and lng")
    lat = optional_float(raw.get("lat"), "Classroom latitude", minimum=-90.0, maximum=90.0)
    lng = optional_float(raw.get("lng"), "Classroom longitude", minimum=-180.0, maximum=180.0)
    if lat is None or lng is None:
        return None
    return GeoPoint(lat, lng)


def register(app: Flask, container: Container) -> None:
    teacher_only = teacher_required(container.teachers_repo)
    sessions = container.session_service

    @app.route("/api/sessions/generate", methods=["POST"], endpoint="generate_session")
    @teacher_only
    def generate_session():
        data = request.get_json(silent=True) or {}
        try:
            session = sessions.create_session(
                teacher_id=g.teacher.teacher_id,
                session_type=data.get("sessionType", ""),
                subject_name=data.get("subjectName"),
                year=data.get("year"),
                section_or_group=data.get("sectionOrGroup"),
                classroom_location=_classroom_location(data),
                geofence_radius=optional_positive_int(data.get("geofenceRadius"), "geofenceRadius"),
            )
        except DomainError as e:
            return domain_error(e)
        except Exception:
            logger.exception("Failed to create session")
            return json_error("Failed to generate session", 500)

        return jsonify({
            "success": True,
            "session": session.to_dict(),
            "qrData": sessions.qr_payload(session),
            "qrImageUrl": f"/api/sessions/{session.id}/qr.png",
        }), 201

    @app.route("/api/sessions/active", methods=["GET"], endpoint="active_sessions")
    @teacher_only
    def active_sessions():
        rows = sessions.list_for_teacher(g.teacher.teacher_id, active_only=True)
        return jsonify({"success": True, "sessions": [s.to_dict() for s in rows]})

    @app.route("/api/sessions/history", methods=["GET"], endpoint="session_history")
    @teacher_only
    def session_history():
        rows = sessions.list_for_teacher(g.teacher.teacher_id)
        return jsonify({"success": True, "sessions": [s.to_dict() for s in rows]})

    @app.route("/api/sessions/<session_id>", methods=["GET"], endpoint="session_detail")
    @teacher_only
    def session_detail(session_id: str):
        try:
            session = sessions.get_owned_session(session_id, g.teacher.teacher_id)
        except DomainError as e:
            return domain_error(e)
        return jsonify({"success": True, "session": session.to_dict()})

    @app.route("/api/sessions/<session_id>/qr.png", methods=["GET"], endpoint="session_qr")
    @teacher_only
    def session_qr(session_id: str):
        try:
            session = sessions.get_owned_session(session_id, g.teacher.teacher_id)
        except DomainError as e:
            return domain_error(e)
        return Response(sessions.render_qr_png(session), mimetype="image/png")

    @app.route("/api/sessions/<session_id>/deactivate", methods=["POST"], endpoint="deactivate_session")
    @teacher_only
    def deactivate_session(session_id: str):
        try:
            sessions.get_owned_session(session_id, g.teacher.teacher_id)
            sessions.deactivate_session(session_id)
        except DomainError as e:
            return domain_error(e)
        return jsonify({"success": True, "message": "Session deactivated"})

    @app.route("/api/sessions/<session_id>/extend", methods=["POST"], endpoint="extend_session")
    @teacher_only
    def extend_session(session_id: str):
        data = request.get_json(silent=True) or {}
        try:
            sessions.get_owned_session(session_id, g.teacher.teacher_id)
            session = sessions.extend_session(session_id, data.get("additionalMinutes", 15))
        except DomainError as e:
            return domain_error(e)
        return jsonify({"success": True, "session": session.to_dict() if session else None})

    # Public: students' page checks the link before showing the form.
    @app.route("/api/sessions/<session_id>/validate", methods=["GET"], endpoint="validate_session")
    def validate_session(session_id: str):
        return jsonify({"valid": sessions.is_session_valid(session_id).valid})
