import os
import logging
from pydantic import BaseModel, Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


class NotificationSettings(BaseModel):
    enabled: bool = Field(default=os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true")
    max_attempts: int = Field(default=int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3")))
    retry_wait_seconds: float = Field(default=float(os.getenv("NOTIFICATION_RETRY_WAIT", "0.5")))


class Config(BaseModel):
    app_name: str = "HRFlow Workflow Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./hrflow.db")
    # Left unset, the store's native level applies (read committed on PostgreSQL).
    db_isolation_level: Optional[str] = os.getenv("DB_ISOLATION_LEVEL") or None
    db_lock_timeout_seconds: float = float(os.getenv("DB_LOCK_TIMEOUT_SECONDS", "15"))

    # Side effects
    notifications: NotificationSettings = NotificationSettings()

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    user_id_header: str = "X-User-Id"

    # CORS - comma-separated origins loaded from env.
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


settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment == "production" and settings.database_url.startswith("sqlite"):
    _logger.warning("Running in production against SQLite; row-level locking is unavailable.")
