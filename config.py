import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        cors_origins: list[str],
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.cors_origins = cors_origins
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_TRACKER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv(
        "FINANCE_TRACKER_DATABASE_URL", f"sqlite:///{default_db}"
    )
    timezone = os.getenv("FINANCE_TRACKER_TIMEZONE", "Europe/Berlin")
    session_secret = os.getenv(
        "FINANCE_TRACKER_SESSION_SECRET",
        "5d1c0e7f2b7a4c39a0f6f3e8d2b19c4e7a6f0d3b8c2e5f1a9d7b4c6e0f2a8b3d",
    )
    session_max_age_hours = int(
        os.getenv("FINANCE_TRACKER_SESSION_MAX_AGE_HOURS", "24")
    )
    cors_origins = _split_origins(
        os.getenv("FINANCE_TRACKER_CORS_ORIGINS", "http://localhost:3000")
    )
    log_level = os.getenv("FINANCE_TRACKER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        cors_origins=cors_origins,
        log_level=log_level,
    )
