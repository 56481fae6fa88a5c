"""Application configuration via environment variables."""

from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    database_url: str = "sqlite+aiosqlite:///./clearpath.db"
    # SQLite only: seconds a writer waits for the database lock
    database_busy_timeout_seconds: float = 15.0
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: str = "*"
    environment: str = "development"
    public_url: str = "https://clearpathrd.com"

    # Certificate numbering
    certificate_number_prefix: str = "CP"
    certificate_number_max_attempts: int = 5

    # Notification delivery (empty URL disables it)
    notification_webhook_url: str = ""
    notification_webhook_secret: str = "change-me"
    notification_timeout_seconds: int = 10

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    INSECURE_SECRETS: ClassVar[set[str]] = {"change-me", "change-me-in-production", "secret", ""}

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.notification_webhook_url)

    def validate_production(self) -> None:
        """Raise if running in production with an insecure notification secret."""
        if (
            self.environment == "production"
            and self.notifications_enabled
            and self.notification_webhook_secret in self.INSECURE_SECRETS
        ):
            raise RuntimeError(
                "NOTIFICATION_WEBHOOK_SECRET must be changed from default in production. "
                'Generate one: python -c "import secrets; print(secrets.token_hex(32))"'
            )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
