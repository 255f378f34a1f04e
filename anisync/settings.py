from dataclasses import dataclass
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "anisync")
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://anisync:anisync@db:5432/anisync",
    )
    database_pool_mode: str = _env_str("DATABASE_POOL_MODE", "auto")
    database_pool_size: int = _env_int("DATABASE_POOL_SIZE", 5)
    database_pool_max_overflow: int = _env_int("DATABASE_POOL_MAX_OVERFLOW", 10)
    database_pool_timeout_seconds: int = _env_int("DATABASE_POOL_TIMEOUT_SECONDS", 30)
    catalog_api_base_url: str = _env_str("CATALOG_API_BASE_URL", "")
    catalog_api_timeout_seconds: float = _env_float("CATALOG_API_TIMEOUT_SECONDS", 15.0)
    catalog_api_retry_attempts: int = _env_int("CATALOG_API_RETRY_ATTEMPTS", 3)
    ingestion_batch_limit: int = _env_int("INGESTION_BATCH_LIMIT", 500)
    ingestion_request_delay_seconds: float = _env_float(
        "INGESTION_REQUEST_DELAY_SECONDS",
        1.0,
    )
    ingestion_failure_imbalance_threshold: int = _env_int(
        "INGESTION_FAILURE_IMBALANCE_THRESHOLD",
        50,
    )
    ingestion_max_failure_attempts: int = _env_int("INGESTION_MAX_FAILURE_ATTEMPTS", 3)
    ingestion_stale_run_seconds: int = _env_int("INGESTION_STALE_RUN_SECONDS", 600)
    scheduler_enabled: bool = _env_bool("SCHEDULER_ENABLED", False)
    scheduler_tick_seconds: int = _env_int("SCHEDULER_TICK_SECONDS", 3600)
    control_token: str = os.getenv("CONTROL_TOKEN", "")
    log_level: str = _env_str("LOG_LEVEL", "INFO")
    log_format: str = _env_str("LOG_FORMAT", "console")
    log_requests: bool = _env_bool("LOG_REQUESTS", True)
    log_uvicorn_access: bool = _env_bool("LOG_UVICORN_ACCESS", False)
    log_request_skip_paths: str = _env_str("LOG_REQUEST_SKIP_PATHS", "/healthz")
    log_redact_fields: str = os.getenv("LOG_REDACT_FIELDS", "")


settings = Settings()
