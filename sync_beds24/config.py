import json
import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = os.getenv("DB_SCHEMA", "beds24")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS", "*")
ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",") if origin.strip()
]

# Admin capability for bootstrap and connection management endpoints
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Basic auth credentials Beds24 sends with webhook deliveries
WEBHOOK_USERNAME = os.getenv("WEBHOOK_USERNAME")
WEBHOOK_PASSWORD = os.getenv("WEBHOOK_PASSWORD")

# Beds24 API
BEDS24_BASE_URL = os.getenv("BEDS24_BASE_URL", "https://api.beds24.com/v2").rstrip("/")
BEDS24_REQUEST_TIMEOUT = float(os.getenv("BEDS24_REQUEST_TIMEOUT", "30"))
TOKEN_SAFETY_MARGIN_SECONDS = int(os.getenv("TOKEN_SAFETY_MARGIN_SECONDS", "300"))
CREDIT_LOW_WATERMARK = float(os.getenv("CREDIT_LOW_WATERMARK", "50"))

# Sync windows
BOOTSTRAP_LOOKBACK_DAYS = int(os.getenv("BOOTSTRAP_LOOKBACK_DAYS", "365"))
DELTA_DEFAULT_LOOKBACK_DAYS = int(os.getenv("DELTA_DEFAULT_LOOKBACK_DAYS", "7"))
CALENDAR_WINDOW_DAYS = int(os.getenv("CALENDAR_WINDOW_DAYS", "365"))
RATE_PUSH_BATCH_DAYS = int(os.getenv("RATE_PUSH_BATCH_DAYS", "50"))

# Scheduler
BOOKINGS_SYNC_INTERVAL_MINUTES = int(os.getenv("BOOKINGS_SYNC_INTERVAL_MINUTES", "60"))
CALENDAR_SYNC_INTERVAL_MINUTES = int(os.getenv("CALENDAR_SYNC_INTERVAL_MINUTES", "360"))
SCHEDULER_MAX_WORKERS = int(os.getenv("SCHEDULER_MAX_WORKERS", "4"))
SYNC_LOCK_TTL_SECONDS = int(os.getenv("SYNC_LOCK_TTL_SECONDS", "900"))
BACKOFF_BASE_SECONDS = int(os.getenv("BACKOFF_BASE_SECONDS", "300"))
BACKOFF_MAX_SECONDS = int(os.getenv("BACKOFF_MAX_SECONDS", "3600"))

# Health and recovery
ERROR_WINDOW_HOURS = int(os.getenv("ERROR_WINDOW_HOURS", "24"))
ERROR_RATE_WARNING = float(os.getenv("ERROR_RATE_WARNING", "0.05"))
ERROR_RATE_CRITICAL = float(os.getenv("ERROR_RATE_CRITICAL", "0.25"))
MIN_ERRORS_FOR_CRITICAL = int(os.getenv("MIN_ERRORS_FOR_CRITICAL", "3"))
STALE_SYNC_HOURS = int(os.getenv("STALE_SYNC_HOURS", "3"))
BOOTSTRAP_GRACE_HOURS = int(os.getenv("BOOTSTRAP_GRACE_HOURS", "24"))
CURSOR_NUDGE_HOURS = int(os.getenv("CURSOR_NUDGE_HOURS", "24"))
STUCK_CURSOR_RUNS = int(os.getenv("STUCK_CURSOR_RUNS", "3"))

LOG_REDACT_KEYS: list[str] = json.loads(
    os.getenv(
        "LOG_REDACT_KEYS",
        '["token", "access_token", "refresh_token", "refreshtoken", "authorization",'
        ' "secret", "password", "email", "phone"]',
    )
)
