"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Consultation Calendar Sync"
    debug: bool = False
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all
    log_dir: Path = Path.home() / ".logs" / "consult_sync"

    # Database
    database_url: str = "sqlite:///./consult_sync.db"

    # Scheduling provider (Calendly-style API)
    calendly_api_key: str = ""
    calendly_api_base: str = "https://api.calendly.com"
    calendly_webhook_secret: str = ""  # Shared signing key for inbound webhooks
    provider_timeout_seconds: float = 10.0

    # Poll sync
    sync_enabled: bool = True
    sync_interval_minutes: int = 15
    sync_lookback_days: int = 1
    sync_lookahead_days: int = 7
    sync_max_reported_errors: int = 20

    def configuration_problems(self) -> list[str]:
        """Describe missing settings that will make requests fail."""
        problems = []
        if not self.calendly_webhook_secret:
            problems.append("CALENDLY_WEBHOOK_SECRET is not set; webhooks will be rejected")
        if not self.calendly_api_key:
            problems.append("CALENDLY_API_KEY is not set; poll sync is disabled")
        return problems


settings = Settings()


def get_settings() -> Settings:
    """Dependency for getting application settings."""
    return settings
