from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    PROJECT_NAME: str = "Shared To-do Calendar API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"
    # Keep the database at the project root so every entry point shares one file
    DATABASE_URL: str = "sqlite:///../todocal.db"
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    JWT_ALGORITHM: str = "HS256"
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Redis configuration
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CHANGES_CHANNEL: str = "todocal:changes"
    REALTIME_REDIS_ENABLED: bool = False

    # Celery configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    NOTIFICATIONS_VIA_CELERY: bool = False

    # Reminders
    REMINDER_SCAN_INTERVAL_SECONDS: float = 60.0
    REMINDER_DEFAULT_HOUR: int = 9

    # Calendar bootstrap
    CALENDAR_BOOTSTRAP_TIMEOUT_SECONDS: float = 5.0
    CALENDAR_BOOTSTRAP_MAX_RETRIES: int = 1
    DEFAULT_CALENDAR_NAME: str = "Personal calendar"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: List[str] | str) -> List[str]:
        """Allow both comma-separated strings and list inputs."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("REMINDER_DEFAULT_HOUR")
    @classmethod
    def check_reminder_hour(cls, value: int) -> int:
        if not 0 <= value <= 23:
            raise ValueError("REMINDER_DEFAULT_HOUR must be between 0 and 23")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
