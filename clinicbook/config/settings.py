"""
Application settings and configuration
"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Basic app settings
    DEBUG: bool = Field(default=False)
    APP_NAME: str = Field(default="Clinic Booking API")

    # Tokens are issued by the external identity provider, we only verify them
    JWT_SECRET_KEY: str = Field(
        default="change-this-jwt-secret-in-production-use-long-random-string"
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)  # 1 hour

    # Server settings
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # SMTP (booking confirmations, reminders)
    EMAIL_HOST: str = "smtp.gmail.com"
    EMAIL_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_USERNAME: str = ""
    EMAIL_PASSWORD: str = ""
    EMAIL_FROM_ADDRESS: str = "notifications@clinicbook.local"
    EMAIL_FROM_NAME: str = "Clinic Notifications"

    # Database settings
    DATABASE_URL: str = Field(default="sqlite:///./clinicbook.db")
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=20)

    # Redis settings
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=50)

    # Celery settings
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/1")
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/2")
    CELERY_TASK_SERIALIZER: str = Field(default="json")

    # Twilio settings
    TWILIO_ACCOUNT_SID: str = Field(default="")
    TWILIO_AUTH_TOKEN: str = Field(default="")
    TWILIO_FROM_NUMBER: str = Field(default="")

    # Booking rules used when a clinic has not configured its own
    DEFAULT_LEAD_TIME_MINUTES: int = Field(default=60)
    DEFAULT_MAX_ADVANCE_DAYS: int = Field(default=30)
    DEFAULT_SLOT_STEP_MINUTES: int = Field(default=15)

    # Idempotency ledger
    IDEMPOTENCY_BACKEND: str = Field(default="memory")  # memory | redis
    IDEMPOTENCY_TTL_SECONDS: int = Field(default=600)  # 10 minutes

    # Notifications
    DAILY_NOTIFICATION_CAP: int = Field(default=3)
    REMINDER_LOOKAHEAD_HOURS: int = Field(default=24)

    # Rate limiting (requests per minute per client)
    PUBLIC_RATE_LIMIT_PER_MINUTE: int = Field(default=50)
    PRIVATE_RATE_LIMIT_PER_MINUTE: int = Field(default=100)

    # Monitoring settings
    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Convenience accessor for settings
settings = get_settings()
