from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "HRIS Leave"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://hris:hris@db:5432/hris"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Leave attachments
    attachment_max_bytes: int = 5 * 1024 * 1024
    attachment_allowed_extensions: list[str] = [".pdf", ".jpg", ".jpeg", ".png"]
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:8000"

    # Notification dispatch
    notification_queue_size: int = 1000
    notification_max_retries: int = 3
    notification_retry_delay_seconds: float = 1.0

    worker_interval_seconds: int = 86400


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
