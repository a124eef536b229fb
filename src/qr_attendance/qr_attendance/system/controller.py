from __future__ import annotations

from flask import Flask, jsonify

from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/health", methods=["GET"], endpoint="health")
    def health():
        report = container.health_service.report()
        return jsonify(report), 200 if report["status"] == "ok" else 503
