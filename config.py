import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("WALLETS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "wallets.db"
    database_url = os.getenv("WALLETS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("WALLETS_TIMEZONE", "Europe/Berlin")
    auth_secret = os.getenv(
        "WALLETS_AUTH_SECRET",
        "4f1c0e9d2b7a48c6a3e5d8f0b1c2a9e7d6f5c4b3a2918e7d6c5b4a39281f0e1d",
    )
    log_level = os.getenv("WALLETS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        log_level=log_level,
    )
