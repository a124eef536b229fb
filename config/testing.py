import os

from config.base import *  # noqa: F401,F403

SECRET_KEY = "test-secret"
API_KEY = "test-api-key"

DEBUG = False
TESTING = True

# Tests never touch Google.
GOOGLE_CREDENTIALS_JSON = None
GOOGLE_CREDENTIALS_FILE = None
SESSION_JANITOR_INTERVAL_SECONDS = 0

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
