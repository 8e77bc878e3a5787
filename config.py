import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        audit_hour: int,
        audit_minute: int,
        sqlite_busy_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.audit_hour = audit_hour
        self.audit_minute = audit_minute
        self.sqlite_busy_timeout_secs = sqlite_busy_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "Asia/Kolkata")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    audit_hour = int(os.getenv("FINANCE_AUDIT_HOUR", "3"))
    audit_minute = int(os.getenv("FINANCE_AUDIT_MINUTE", "15"))
    sqlite_busy_timeout_secs = float(
        os.getenv("FINANCE_SQLITE_BUSY_TIMEOUT_SECS", "30")
    )
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        audit_hour=audit_hour,
        audit_minute=audit_minute,
        sqlite_busy_timeout_secs=sqlite_busy_timeout_secs,
    )
