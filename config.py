import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        recurring_hour: int,
        recurring_minute: int,
        csv_max_bytes: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.recurring_hour = recurring_hour
        self.recurring_minute = recurring_minute
        self.csv_max_bytes = csv_max_bytes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Berlin")
    recurring_hour = int(os.getenv("LEDGER_RECURRING_HOUR", "0"))
    recurring_minute = int(os.getenv("LEDGER_RECURRING_MINUTE", "0"))
    csv_max_bytes = int(os.getenv("LEDGER_CSV_MAX_BYTES", str(5 * 1024 * 1024)))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        recurring_hour=recurring_hour,
        recurring_minute=recurring_minute,
        csv_max_bytes=csv_max_bytes,
    )
