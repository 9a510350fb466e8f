import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        refresh_delay_secs: float,
        rollover_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.refresh_delay_secs = refresh_delay_secs
        self.rollover_hour = rollover_hour


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGETBARS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budgetbars.db"
    database_url = os.getenv("BUDGETBARS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGETBARS_TIMEZONE", "Europe/Berlin")
    refresh_delay_secs = float(os.getenv("BUDGETBARS_REFRESH_DELAY_SECS", "1.0"))
    rollover_hour = int(os.getenv("BUDGETBARS_ROLLOVER_HOUR", "0"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        refresh_delay_secs=refresh_delay_secs,
        rollover_hour=rollover_hour,
    )
