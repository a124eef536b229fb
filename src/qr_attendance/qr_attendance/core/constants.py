"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_GEOFENCE_RADIUS = 100
DEFAULT_QR_VALIDITY_MINUTES = 15
MAX_EXTEND_MINUTES = 120
DEFAULT_SUSPICIOUS_MIN_VIOLATIONS = 3
RECENT_VIOLATIONS_LIMIT = 10

DEFAULT_QUEUE_CONCURRENCY = 5
DEFAULT_QUEUE_MAX_SIZE = 10000
DEFAULT_QUEUE_RETRIES = 2
DEFAULT_QUEUE_RETRY_DELAY_MS = 1000

DEFAULT_SESSION_CACHE_TTL_SECONDS = 30
DEFAULT_JANITOR_INTERVAL_SECONDS = 300

NOT_AVAILABLE = "N/A"
SUBMISSION_ACK_MESSAGE = "Attendance submitted successfully"
