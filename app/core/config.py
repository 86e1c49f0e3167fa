import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            value = default
    if min_value is not None:
        return max(min_value, value)
    return value


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    cors_origins: tuple[str, ...]
    upload_dir: str
    report_timezone: str
    report_max_buckets: int
    allow_backorders: bool
    low_stock_threshold: int
    low_stock_page_size: int
    default_page_size: int
    storage_retry_attempts: int
    log_config: str
    log_level: str
    auto_create_schema: bool


def load_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "Store Ledger API"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./store_ledger.db"),
        cors_origins=tuple(
            origin.strip().rstrip("/")
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        report_timezone=os.getenv("REPORT_TIMEZONE", "UTC"),
        report_max_buckets=_env_int("REPORT_MAX_BUCKETS", 1000, min_value=1),
        allow_backorders=_env_bool("ALLOW_BACKORDERS", False),
        low_stock_threshold=_env_int("LOW_STOCK_THRESHOLD", 7, min_value=0),
        low_stock_page_size=_env_int("LOW_STOCK_PAGE_SIZE", 100, min_value=1),
        default_page_size=_env_int("DEFAULT_PAGE_SIZE", 20, min_value=1),
        storage_retry_attempts=_env_int("STORAGE_RETRY_ATTEMPTS", 3, min_value=1),
        log_config=os.getenv("LOG_CONFIG", "configs/logging.yaml"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        auto_create_schema=_env_bool("AUTO_CREATE_SCHEMA", False),
    )


settings = load_settings()
