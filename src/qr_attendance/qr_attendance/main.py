from __future__ import annotations

import atexit
import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.logging_utils import configure_logging
from .container import Container, build_container
from .database.bootstrap import apply_schema, list_tables
from .attendance.controller import register as register_attendance
from .cheating.controller import register as register_cheating
from .sessions.controller import register as register_sessions
from .system.controller import register as register_system

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    """Flask app factory; pass ``container`` to run over pre-built (fake) stores."""

    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    configure_logging(settings)

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["API_KEY"] = getattr(settings, "API_KEY", "")

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings_module,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )
        if getattr(settings, "AUTO_INIT_DB", False):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            logger.info("Schema ready (tables=%d)", len(list_tables(db_config)))
        container = build_container(settings)

    register_attendance(app, container)
    register_sessions(app, container)
    register_cheating(app, container)
    register_system(app, container)

    _start_background(container, timeout=float(getattr(settings, "QUEUE_SHUTDOWN_TIMEOUT_SECONDS", 10)))
    app.extensions["qr_attendance"] = container
    return app


def _start_background(container: Container, *, timeout: float) -> None:
    container.background_loop.start()
    container.janitor.start()

    def _shutdown() -> None:
        container.janitor.stop()
        container.background_loop.stop(container.queues, timeout=timeout)

    atexit.register(_shutdown)
