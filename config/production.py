import os

from config.base import *  # noqa: F401,F403

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DEBUG = False
LOG_FILE = os.getenv("LOG_FILE", "logs/qr_attendance.log")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
