import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        user_id: int,
        recent_transactions_limit: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.user_id = user_id
        self.recent_transactions_limit = recent_transactions_limit
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'finance.db'}"
    timezone = os.getenv("FINANCE_TIMEZONE", "Europe/Berlin")
    csrf_secret = os.getenv(
        "FINANCE_CSRF_SECRET",
        "5d0c8e7a41f2b96a3e0d7c15b8f4a2e96c1d3b7f0a8e5c2d9b4f6a1e7c3d0b85",
    )
    user_id = int(os.getenv("FINANCE_USER_ID", "1"))
    recent_limit = int(os.getenv("FINANCE_RECENT_LIMIT", "5"))
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        user_id=user_id,
        recent_transactions_limit=recent_limit,
        log_level=log_level,
    )


def local_now() -> datetime:
    """Wall-clock time in the configured zone, as a naive datetime."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)
