from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from schedulehub.core.env import load_env


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_USER_DATA_DIR = Path.home() / ".schedulehub" / "data"
DEV_TOKEN_PEPPER = "dev-only-token-pepper-change-me"

ENVIRONMENTS = {"development", "staging", "production", "test"}
LOCK_BACKENDS = {"memory", "database", "redis"}


@dataclass(frozen=True)
class Settings:
    environment: str  # development, staging, production, test
    data_dir: Path
    database_url_async: str
    database_url_sync: str
    sql_echo: bool
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_pool_recycle: int
    redis_url: str
    lock_backend: str
    lock_ttl_seconds: int
    public_base_url: str
    public_link_ttl_days: int
    token_hash_pepper: str
    organizer_email: str
    slot_max_results: Optional[int]
    calendar_provider: str
    graph_tenant_id: str
    graph_client_id: str
    graph_client_secret: str
    graph_base_url: str
    ats_provider: str
    ats_sync_enabled: bool
    icims_customer_id: str
    icims_base_url: str
    icims_api_key: str
    email_mode: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_from: str
    smtp_starttls: bool
    calendar_timeout_seconds: float
    ats_timeout_seconds: float
    notification_batch_size: int
    notification_max_attempts: int
    sync_batch_size: int
    reconcile_batch_size: int
    reconciliation_stale_hours: int
    reconciliation_max_attempts: int
    escalation_nudge_hours: int
    escalation_urgent_nudge_hours: int
    escalation_coordinator_hours: int
    escalation_expire_hours: int
    worker_notify_interval_seconds: int
    worker_sync_interval_seconds: int
    worker_reconcile_interval_seconds: int
    worker_escalation_interval_seconds: int
    log_level: str
    log_json: bool
    log_file: str

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _get_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_float(name: str, default: float, *, minimum: Optional[float] = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def _get_choice(name: str, choices: set[str], default: str) -> str:
    value = _get_str(name, default).lower() or default
    if value not in choices:
        return default
    return value


load_env()


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir).expanduser()
    return DEFAULT_USER_DATA_DIR


def _normalize_sqlite_url(url: str, *, async_driver: bool) -> str:
    if not url:
        return url
    prefix = "sqlite+aiosqlite" if async_driver else "sqlite"
    if url.startswith("sqlite"):
        path = url.split("///", maxsplit=1)[-1]
        return f"{prefix}:///{path}"
    return url


def _derive_database_urls(raw_db_url: str) -> tuple[str, str]:
    async_url = raw_db_url
    sync_url = raw_db_url
    if raw_db_url.startswith("sqlite"):
        async_url = _normalize_sqlite_url(raw_db_url, async_driver=True)
        sync_url = _normalize_sqlite_url(raw_db_url, async_driver=False)
    elif raw_db_url.startswith("postgresql+asyncpg"):
        sync_url = raw_db_url.replace("+asyncpg", "")
    elif raw_db_url.startswith("postgresql://") or raw_db_url.startswith("postgres://"):
        tail = raw_db_url.split("://", 1)[1]
        async_url = f"postgresql+asyncpg://{tail}"
        sync_url = f"postgresql://{tail}"
    return async_url, sync_url


def _validate_production(settings: Settings) -> None:
    errors: list[str] = []
    if settings.token_hash_pepper == DEV_TOKEN_PEPPER or len(settings.token_hash_pepper) < 32:
        errors.append("TOKEN_HASH_PEPPER must be set to a random value of at least 32 characters")
    if settings.database_url_async.startswith("sqlite"):
        errors.append("DATABASE_URL must point to PostgreSQL in production")
    if settings.lock_backend == "memory":
        errors.append("LOCK_BACKEND=memory is not safe with more than one worker process")
    if settings.lock_backend == "redis" and not settings.redis_url:
        errors.append("REDIS_URL is required when LOCK_BACKEND=redis")
    if errors:
        raise ValueError("Invalid production configuration: " + "; ".join(errors))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = _get_choice("ENVIRONMENT", ENVIRONMENTS, "development")

    data_dir = _default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    raw_db_url = _get_str("DATABASE_URL")
    if not raw_db_url:
        raw_db_url = f"sqlite+aiosqlite:///{data_dir / 'schedulehub.db'}"
    async_url, sync_url = _derive_database_urls(raw_db_url)

    slot_max_results = _get_int("SLOT_MAX_RESULTS", 30, minimum=0)

    settings = Settings(
        environment=environment,
        data_dir=data_dir,
        database_url_async=async_url,
        database_url_sync=sync_url,
        sql_echo=_get_bool("SQL_ECHO", default=False),
        db_pool_size=_get_int("DB_POOL_SIZE", 20, minimum=1),
        db_max_overflow=_get_int("DB_MAX_OVERFLOW", 10, minimum=0),
        db_pool_timeout=_get_int("DB_POOL_TIMEOUT", 30, minimum=1),
        db_pool_recycle=_get_int("DB_POOL_RECYCLE", 3600, minimum=60),
        redis_url=_get_str("REDIS_URL"),
        lock_backend=_get_choice("LOCK_BACKEND", LOCK_BACKENDS, "memory"),
        lock_ttl_seconds=_get_int("LOCK_TTL_SECONDS", 120, minimum=1),
        public_base_url=_get_str("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        public_link_ttl_days=_get_int("PUBLIC_LINK_TTL_DAYS", 14, minimum=1),
        token_hash_pepper=_get_str("TOKEN_HASH_PEPPER") or DEV_TOKEN_PEPPER,
        organizer_email=_get_str("ORGANIZER_EMAIL", "scheduling@example.com"),
        slot_max_results=slot_max_results or None,
        calendar_provider=_get_choice("CALENDAR_PROVIDER", {"memory", "graph"}, "memory"),
        graph_tenant_id=_get_str("GRAPH_TENANT_ID"),
        graph_client_id=_get_str("GRAPH_CLIENT_ID"),
        graph_client_secret=_get_str("GRAPH_CLIENT_SECRET"),
        graph_base_url=_get_str("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0").rstrip("/"),
        ats_provider=_get_choice("ATS_PROVIDER", {"memory", "icims"}, "memory"),
        ats_sync_enabled=_get_bool("ATS_SYNC_ENABLED", default=True),
        icims_customer_id=_get_str("ICIMS_CUSTOMER_ID"),
        icims_base_url=_get_str("ICIMS_BASE_URL", "https://api.icims.com").rstrip("/"),
        icims_api_key=_get_str("ICIMS_API_KEY"),
        email_mode=_get_choice("EMAIL_MODE", {"console", "smtp"}, "console"),
        smtp_host=_get_str("SMTP_HOST", "localhost"),
        smtp_port=_get_int("SMTP_PORT", 587, minimum=1),
        smtp_username=_get_str("SMTP_USERNAME"),
        smtp_password=_get_str("SMTP_PASSWORD"),
        smtp_from=_get_str("SMTP_FROM", "scheduling@example.com"),
        smtp_starttls=_get_bool("SMTP_STARTTLS", default=True),
        calendar_timeout_seconds=_get_float("CALENDAR_TIMEOUT_SECONDS", 10.0, minimum=0.1),
        ats_timeout_seconds=_get_float("ATS_TIMEOUT_SECONDS", 10.0, minimum=0.1),
        notification_batch_size=_get_int("NOTIFICATION_BATCH_SIZE", 10, minimum=1),
        notification_max_attempts=_get_int("NOTIFICATION_MAX_ATTEMPTS", 5, minimum=1),
        sync_batch_size=_get_int("SYNC_BATCH_SIZE", 10, minimum=1),
        reconcile_batch_size=_get_int("RECONCILE_BATCH_SIZE", 10, minimum=1),
        reconciliation_stale_hours=_get_int("RECONCILIATION_STALE_HOURS", 24, minimum=1),
        reconciliation_max_attempts=_get_int("RECONCILIATION_MAX_ATTEMPTS", 3, minimum=1),
        escalation_nudge_hours=_get_int("ESCALATION_NUDGE_HOURS", 48, minimum=1),
        escalation_urgent_nudge_hours=_get_int("ESCALATION_URGENT_NUDGE_HOURS", 96, minimum=1),
        escalation_coordinator_hours=_get_int("ESCALATION_COORDINATOR_HOURS", 120, minimum=1),
        escalation_expire_hours=_get_int("ESCALATION_EXPIRE_HOURS", 168, minimum=1),
        worker_notify_interval_seconds=_get_int("WORKER_NOTIFY_INTERVAL_SECONDS", 60, minimum=1),
        worker_sync_interval_seconds=_get_int("WORKER_SYNC_INTERVAL_SECONDS", 60, minimum=1),
        worker_reconcile_interval_seconds=_get_int("WORKER_RECONCILE_INTERVAL_SECONDS", 300, minimum=1),
        worker_escalation_interval_seconds=_get_int("WORKER_ESCALATION_INTERVAL_SECONDS", 900, minimum=1),
        log_level=_get_str("LOG_LEVEL", "INFO").upper() or "INFO",
        log_json=_get_bool("LOG_JSON", default=False),
        log_file=_get_str("LOG_FILE"),
    )

    if settings.is_production:
        _validate_production(settings)
    elif settings.token_hash_pepper == DEV_TOKEN_PEPPER and environment != "test":
        logging.warning("TOKEN_HASH_PEPPER is not set; using the development pepper.")

    return settings


__all__ = ["Settings", "get_settings"]
