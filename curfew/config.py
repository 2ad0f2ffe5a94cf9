"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Sure Petcare
    surepet_email: str = ""
    surepet_password: str = ""
    surepet_api_url: str = "https://app.api.surehub.io/api"
    surepet_device_id: str = "surepet-curfew-service"
    request_timeout: float = 15.0

    # Sync
    poll_interval_seconds: int = 60  # how often the cloud state is mirrored

    # Schedules are interpreted in this zone, not the host's
    timezone: str = "Europe/Amsterdam"

    # Storage
    db_path: str = "data/surepet.db"

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 3000

    # Logging
    log_level: str = "INFO"


settings = Settings()
