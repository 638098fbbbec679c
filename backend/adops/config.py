"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/adops.db"

    # Web
    app_base_url: str = "http://localhost:5000"
    cors_origins: list[str] = ["http://localhost:5000"]

    # Session
    session_secret: str = "dev-session-secret-change-me"
    session_max_age_seconds: int = 7 * 24 * 60 * 60  # 1 week

    # Magic-link authentication
    auth_token_ttl_minutes: int = 15
    token_sweep_interval_minutes: int = 60
    auth_dev_auto_login: bool = False
    bootstrap_admin_email: str = "ad@venturesquare.net"

    # Popbill API (전자세금계산서)
    popbill_link_id: str = ""
    popbill_secret_key: str = ""
    popbill_corp_num: str = ""
    popbill_user_id: str = ""
    popbill_is_test: bool = True
    fiscal_timeout_seconds: float = 30.0

    # Email (SMTP)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def is_popbill_configured(self) -> bool:
        """Check if Popbill API is configured."""
        return bool(self.popbill_link_id and self.popbill_secret_key and self.popbill_corp_num)

    def is_smtp_configured(self) -> bool:
        """Check if SMTP is configured."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def uses_default_session_secret(self) -> bool:
        return self.session_secret == "dev-session-secret-change-me"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
