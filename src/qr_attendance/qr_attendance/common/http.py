from __future__ import annotations

import hmac
import logging
from functools import wraps

from flask import current_app, g, jsonify, request

from ..core.exceptions import AuthorizationError, DomainError, NotFoundError, ValidationError
from ..teachers.repository import TeacherRepository

logger = logging.getLogger(__name__)


def json_error(message: str, status: int):
    return jsonify({"error": message}), status


def domain_error(e: DomainError):
    if isinstance(e, ValidationError):
        return json_error(str(e), 400)
    if isinstance(e, NotFoundError):
        return json_error(str(e), 404)
    if isinstance(e, AuthorizationError):
        return json_error(str(e), e.status_code)
    return json_error(str(e), 400)


def client_ip() -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""

    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.remote_addr or ""


def authenticate_teacher(teachers: TeacherRepository):
    expected = str(current_app.config.get("API_KEY") or "")
    provided = request.headers.get("X-API-Key", "")
    if expected:
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            raise AuthorizationError("Unauthorized: Missing or invalid API Key")
    elif not current_app.config.get("DEBUG"):
        raise AuthorizationError("Teacher API is disabled: no API key configured")

    teacher_id = request.headers.get("X-Teacher-Id", "").strip()
    if not teacher_id:
        raise AuthorizationError("Unauthorized: Missing teacher id")
    teacher = teachers.get_by_id(teacher_id)
    if not teacher:
        raise AuthorizationError("Forbidden: Unknown teacher", status_code=403)
    return teacher


def teacher_required(teachers: TeacherRepository):
    """Guard a view with the API key and ``X-Teacher-Id`` headers; sets ``g.teacher``."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                g.teacher = authenticate_teacher(teachers)
            except AuthorizationError as e:
                logger.warning("Rejected teacher request to %s: %s", request.path, e)
                return json_error(str(e), e.status_code)
            return view(*args, **kwargs)

        return wrapper

    return decorator
