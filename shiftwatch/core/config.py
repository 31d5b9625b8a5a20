import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


class EngineSettings(BaseModel):
    recalc_batch_size: int = int(os.getenv("RECALC_BATCH_SIZE", "50"))
    recalc_max_workers: int = int(os.getenv("RECALC_MAX_WORKERS", "4"))
    detection_lookback_hours: int = int(os.getenv("DETECTION_LOOKBACK_HOURS", "48"))
    monitoring_interval_minutes: int = int(os.getenv("MONITORING_INTERVAL_MINUTES", "5"))
    stats_cache_ttl_seconds: int = int(os.getenv("STATS_CACHE_TTL_SECONDS", "300"))
    storage_retry_attempts: int = int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3"))


class Config(BaseModel):
    app_name: str = "ShiftWatch"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./shiftwatch.db")
    sqlite_busy_timeout: int = int(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # Rating engine
    engine: EngineSettings = EngineSettings()

    # Feature Flags
    enable_notifications: bool = os.getenv("ENABLE_NOTIFICATIONS", "true").lower() == "true"


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if settings.database_url.startswith("sqlite"):
        raise RuntimeError(
            "FATAL: SQLite is not supported outside development/testing. "
            "Set DATABASE_URL to a PostgreSQL database."
        )
elif settings.database_url.startswith("sqlite"):
    _logger.warning("⚠ Using SQLite storage; only acceptable in development.")
