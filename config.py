"""Application configuration via Pydantic Settings."""
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Storage
    database_url: str = "sqlite:///views.db"
    storage_key: str = "openprocessingViewHistory"

    # Collector
    site_url: str = "https://openprocessing.org/"
    api_base: str = "https://openprocessing.org/api"
    user_id: int = 0
    page_limit: int = 10
    request_timeout: float = 8.0

    # Capture
    capture_timezone: str = "Europe/Amsterdam"
    poll_interval: int = 0  # seconds, 0 disables scheduled capture
    poll_url: str = ""

    # Presentation
    breakdown_limit: int = 6
    title_max_length: int = 30

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="VIEWTRACK_", env_file=".env", extra="ignore")

    @field_validator("capture_timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone: {value}") from e
        return value


settings = Settings()
