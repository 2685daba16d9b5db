import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        max_installments: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.max_installments = max_installments
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finances.db"
    database_url = os.getenv("FINANCES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCES_TIMEZONE", "America/Sao_Paulo")
    max_installments = int(os.getenv("FINANCES_MAX_INSTALLMENTS", "120"))
    log_level = os.getenv("FINANCES_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        max_installments=max_installments,
        log_level=log_level,
    )
