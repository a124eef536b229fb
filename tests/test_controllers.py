from __future__ import annotations

import importlib

import pytest

from qr_attendance.container import wire_container
from qr_attendance.main import create_app

HEADERS = {"X-API-Key": "test-api-key", "X-Teacher-Id": "t-1"}


@pytest.fixture
def container(monkeypatch, teachers_repo, sessions_repo, attendance_repo, violations_repo):
    monkeypatch.setenv("APP_ENV", "testing")
    settings = importlib.import_module("config.testing")
    return wire_container(
        settings,
        conn=None,
        teachers_repo=teachers_repo,
        sessions_repo=sessions_repo,
        attendance_repo=attendance_repo,
        violations_repo=violations_repo,
        mirror=None,
        store_counts=lambda: {"sessions": len(sessions_repo.list_by_teacher("t-1"))},
    )


@pytest.fixture
def client(container):
    app = create_app(container)
    yield app.test_client()
    container.background_loop.stop(container.queues, timeout=2)


def _generate(client, **body):
    payload = {"sessionType": "lecture", "subjectName": "Compilers", "year": 3, "sectionOrGroup": "G2"}
    payload.update(body)
    return client.post("/api/sessions/generate", json=payload, headers=HEADERS)


def test_teacher_routes_need_api_key_and_known_teacher(client):
    assert client.get("/api/sessions/active").status_code == 401
    assert client.get("/api/sessions/active", headers={"X-API-Key": "wrong", "X-Teacher-Id": "t-1"}).status_code == 401
    assert client.get("/api/sessions/active", headers={"X-API-Key": "test-api-key"}).status_code == 401

    res = client.get("/api/sessions/active", headers={"X-API-Key": "test-api-key", "X-Teacher-Id": "ghost"})
    assert res.status_code == 403


def test_generate_and_fetch_session(client):
    res = _generate(client, classroomLocation={"lat": 36.75, "lng": 3.05}, geofenceRadius=60)

    assert res.status_code == 201
    body = res.get_json()
    session_id = body["session"]["id"]
    assert body["session"]["geofenceRadius"] == 60
    assert body["session"]["classroomLocation"] == {"lat": 36.75, "lng": 3.05}
    assert body["qrImageUrl"] == f"/api/sessions/{session_id}/qr.png"

    detail = client.get(f"/api/sessions/{session_id}", headers=HEADERS)
    assert detail.status_code == 200
    assert detail.get_json()["session"]["subjectName"] == "Compilers"

    qr = client.get(f"/api/sessions/{session_id}/qr.png", headers=HEADERS)
    assert qr.status_code == 200
    assert qr.mimetype == "image/png"

    active = client.get("/api/sessions/active", headers=HEADERS).get_json()["sessions"]
    assert [s["id"] for s in active] == [session_id]


def test_generate_rejects_bad_input(client):
    assert _generate(client, sessionType="seminar").status_code == 400
    assert _generate(client, year=9).status_code == 400
    assert _generate(client, classroomLocation={"lat": 123, "lng": 3}).status_code == 400


def test_foreign_and_missing_sessions(client):
    session_id = _generate(client).get_json()["session"]["id"]
    other = {"X-API-Key": "test-api-key", "X-Teacher-Id": "t-2"}

    assert client.get(f"/api/sessions/{session_id}", headers=other).status_code == 403
    assert client.get("/api/sessions/missing", headers=HEADERS).status_code == 404
    assert client.post("/api/sessions/missing/deactivate", headers=HEADERS).status_code == 404


def test_deactivate_extend_and_public_validate(client):
    session_id = _generate(client).get_json()["session"]["id"]

    assert client.get(f"/api/sessions/{session_id}/validate").get_json() == {"valid": True}

    assert client.post(f"/api/sessions/{session_id}/deactivate", headers=HEADERS).status_code == 200
    assert client.get(f"/api/sessions/{session_id}/validate").get_json() == {"valid": False}
    assert client.get("/api/sessions/unknown/validate").get_json() == {"valid": False}

    res = client.post(f"/api/sessions/{session_id}/extend", json={"additionalMinutes": 20}, headers=HEADERS)
    assert res.status_code == 200
    assert res.get_json()["session"]["isActive"] is True
    bad = client.post(f"/api/sessions/{session_id}/extend", json={"additionalMinutes": 500}, headers=HEADERS)
    assert bad.status_code == 400


def test_submit_always_acknowledges_the_same_way(client, attendance_repo):
    session_id = _generate(client).get_json()["session"]["id"]
    body = {"sessionId": session_id, "studentName": "Lina", "email": "lina@univ.example"}

    ok = client.post("/api/attendance/submit", json=body, headers={"X-Forwarded-For": "192.0.2.7, 10.0.0.1"})
    again = client.post("/api/attendance/submit", json=body)
    unknown = client.post("/api/attendance/submit", json={**body, "sessionId": "nope"})

    expected = {"success": True, "message": "Attendance submitted successfully"}
    assert ok.get_json() == again.get_json() == unknown.get_json() == expected
    assert [r.ip_address for r in attendance_repo.all()] == ["192.0.2.7"]


def test_submit_with_malformed_input_is_400(client):
    res = client.post("/api/attendance/submit", json={"sessionId": "x", "studentName": "Lina", "email": "nope"})

    assert res.status_code == 400
    assert "error" in res.get_json()


def test_attendance_summary_stats_and_cheating_views(client):
    session_id = _generate(client).get_json()["session"]["id"]
    for name in ("Lina", "Omar"):
        client.post(
            "/api/attendance/submit",
            json={"sessionId": session_id, "studentName": name, "email": f"{name.lower()}@univ.example"},
            headers={"X-Forwarded-For": "192.0.2.7"},
        )

    summary = client.get(f"/api/attendance/session/{session_id}", headers=HEADERS).get_json()
    assert (summary["total"], summary["present"], summary["flagged"]) == (2, 1, 1)

    stats = client.get("/api/attendance/stats", headers=HEADERS).get_json()["stats"]
    assert stats["totalSubmissions"] == 2

    logs = client.get(f"/api/cheating/logs?sessionId={session_id}", headers=HEADERS).get_json()
    assert {entry["email"] for entry in logs["logs"]} == {"lina@univ.example", "omar@univ.example"}
    assert client.get("/api/cheating/logs?type=Teleport", headers=HEADERS).status_code == 400

    suspicious = client.get("/api/cheating/suspicious?minViolations=1", headers=HEADERS).get_json()
    assert {s["email"] for s in suspicious["students"]} == {"lina@univ.example", "omar@univ.example"}

    other = {"X-API-Key": "test-api-key", "X-Teacher-Id": "t-2"}
    assert client.get("/api/cheating/logs", headers=other).get_json()["logs"] == []


def test_student_history_is_scoped_to_the_teacher(client):
    mine = _generate(client).get_json()["session"]["id"]
    theirs = client.post(
        "/api/sessions/generate",
        json={"sessionType": "td", "subjectName": "Databases", "year": 2, "sectionOrGroup": "A"},
        headers={"X-API-Key": "test-api-key", "X-Teacher-Id": "t-2"},
    ).get_json()["session"]["id"]
    for session_id in (mine, theirs):
        client.post(
            "/api/attendance/submit",
            json={"sessionId": session_id, "studentName": "Lina", "email": "lina@univ.example"},
        )

    res = client.get("/api/attendance/student/Lina@Univ.Example", headers=HEADERS)

    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 1
    assert [r["sessionId"] for r in body["records"]] == [mine]
    assert client.get("/api/attendance/student/not-an-email", headers=HEADERS).status_code == 400
    assert client.get("/api/attendance/student/lina@univ.example").status_code == 401


def test_cheating_stats_overview(client):
    session_id = _generate(client).get_json()["session"]["id"]
    for name in ("Lina", "Omar"):
        client.post(
            "/api/attendance/submit",
            json={"sessionId": session_id, "studentName": name, "email": f"{name.lower()}@univ.example"},
            headers={"X-Forwarded-For": "192.0.2.7"},
        )

    body = client.get("/api/cheating/stats", headers=HEADERS).get_json()

    assert body["totalViolations"] == 2
    assert body["uniqueStudentsFlagged"] == 2
    assert body["byType"] == {"Duplicate Device": 2}
    assert len(body["recentViolations"]) == 2

    other = client.get("/api/cheating/stats", headers={"X-API-Key": "test-api-key", "X-Teacher-Id": "t-2"}).get_json()
    assert other["totalViolations"] == 0
    assert other["recentViolations"] == []


def test_health_reports_queues_and_store(client):
    res = client.get("/api/health")

    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "ok"
    assert set(body["queues"]) == {"drive", "attendance"}
    assert set(body["queues"]["drive"]) == {"queued", "active", "lanes", "processed", "failed"}
    assert body["store"]["unsynced"] == 0
