# salon_booking/config.py

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/sqlite/booking.db"
    redis_url: Optional[str] = None

    # "local" serializes per provider inside one process,
    # "redis" serializes per provider across processes
    lock_backend: Literal["local", "redis"] = "local"
    lock_timeout_seconds: float = 30.0
    lock_blocking_timeout_seconds: float = 10.0

    max_query_span_days: int = 62
    read_retry_attempts: int = 3
    slot_cache_ttl_seconds: int = 86400

    google_client_id: str = ""
    google_client_secret: str = ""

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
