import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        default_user_id: int,
        currency: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.default_user_id = default_user_id
        self.currency = currency


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
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    default_user_id = int(os.getenv("FINANCE_DEFAULT_USER_ID", "1"))
    currency = os.getenv("FINANCE_CURRENCY", "EUR").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        default_user_id=default_user_id,
        currency=currency,
    )
