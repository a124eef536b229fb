"""Settings shared by every environment; env modules override what differs."""

import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "qr_attendance"),
}

# Shared secret for teacher routes (sent as X-API-Key).
API_KEY = os.getenv("API_KEY", "")
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000")

DEFAULT_GEOFENCE_RADIUS = int(os.getenv("DEFAULT_GEOFENCE_RADIUS", "100"))
QR_CODE_VALIDITY_MINUTES = int(os.getenv("QR_CODE_VALIDITY_MINUTES", "15"))
ACADEMIC_YEAR = os.getenv("ACADEMIC_YEAR", "2025-2026")

QUEUE_CONCURRENCY = int(os.getenv("QUEUE_CONCURRENCY", "5"))
QUEUE_MAX_SIZE = int(os.getenv("QUEUE_MAX_SIZE", "10000"))
QUEUE_RETRIES = int(os.getenv("QUEUE_RETRIES", "2"))
QUEUE_RETRY_DELAY_MS = int(os.getenv("QUEUE_RETRY_DELAY_MS", "1000"))
QUEUE_SHUTDOWN_TIMEOUT_SECONDS = float(os.getenv("QUEUE_SHUTDOWN_TIMEOUT_SECONDS", "10"))

SESSION_CACHE_TTL_SECONDS = float(os.getenv("SESSION_CACHE_TTL_SECONDS", "30"))
# 0 disables the periodic sweep; reads still expire sessions lazily.
SESSION_JANITOR_INTERVAL_SECONDS = float(os.getenv("SESSION_JANITOR_INTERVAL_SECONDS", "300"))

# Google service account; leave both unset to run without spreadsheet mirroring.
GOOGLE_CREDENTIALS_JSON = os.getenv("GOOGLE_CREDENTIALS_JSON")
GOOGLE_CREDENTIALS_FILE = os.getenv("GOOGLE_CREDENTIALS_FILE")
GOOGLE_SHARE_WITH = os.getenv("GOOGLE_SHARE_WITH")
# Drive folder new spreadsheets are created in (service account must have access).
GOOGLE_DRIVE_FOLDER_ID = os.getenv("GOOGLE_DRIVE_FOLDER_ID")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(levelname)s - %(name)s - %(message)s")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "2500000"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))
