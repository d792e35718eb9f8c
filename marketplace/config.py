# marketplace/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./marketplace.db"
    # Empty → in-process cache store, notifications/realtime only logged
    redis_url: str = ""
    redis_socket_timeout: float = 2.0

    # Cache TTLs (seconds)
    cache_default_ttl: int = 300
    services_cache_ttl: int = 900
    service_detail_cache_ttl: int = 1800
    categories_cache_ttl: int = 3600
    conversations_cache_ttl: int = 300

    # Default slot grid for lazily created availability days
    day_open_hour: int = 8
    day_close_hour: int = 20
    slot_minutes: int = 60
    availability_range_days: int = 14

    message_retention_days: int = 90
    maintenance_enabled: bool = True
    maintenance_interval_seconds: int = 3600

    default_currency: str = "NGN"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite path → absolute, anchored at the project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url
