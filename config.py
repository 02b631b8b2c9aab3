import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        fallback_currency: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.fallback_currency = fallback_currency


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_REPORTS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_REPORTS_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'ledger.db'}"
    timezone = os.getenv("LEDGER_REPORTS_TIMEZONE", "UTC")
    fallback_currency = (
        os.getenv("LEDGER_REPORTS_FALLBACK_CURRENCY", "USD").strip().upper() or "USD"
    )
    return Settings(
        database_url=database_url,
        timezone=timezone,
        fallback_currency=fallback_currency,
    )
