# sidebyside/config.py
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ANONYMOUS_USER_ID = "anonymous"
ANONYMOUS_USER_EMAIL = "anonymous@side-by-side.com"


class Settings(BaseSettings):
    """Environment settings"""

    # API
    app_name: str = "Side-by-Side API"
    debug: bool = False
    server_mode: Literal["development", "production"] = "development"
    base_url: str = "http://localhost:3000"
    client_url: str = "http://localhost:5173"
    voting_base_url: str = "http://localhost:5173"
    cors_origins: list[str] = [
        "https://localhost:5173",
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Database
    database_url: str = "sqlite:///./app.db"
    create_tables_on_startup: bool = True

    # JWT / auth
    secret_key: str = "side-by-side-dev-secret-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 365
    magic_token_expire_hours: int = 24
    figma_code_expire_minutes: int = 5
    auth_mode: Literal["magic-links", "anonymous"] = "magic-links"
    auto_approve_sessions: bool = False

    # Storage
    storage_driver: Literal["local", "s3"] = "local"
    data_dir: str = "./data"
    s3_endpoint: str = ""
    s3_region: str = ""
    s3_bucket: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_force_path_style: bool = False

    # Logs
    log_dir: str = "./logs"

    # Rate limits (None -> depends on server_mode)
    rate_limit_voting_per_minute: int | None = None
    rate_limit_voting_per_hour: int | None = None
    rate_limit_auth_magic_link_per_minute: int = 5
    rate_limit_auth_verify_token_per_minute: int = 5
    rate_limit_figma_auth_per_minute: int = 10

    # Notifications
    mattermost_enabled: bool = False
    mattermost_webhook_url: str = ""
    telegram_enabled: bool = False
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # SMTP
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from_email: str = "noreply@side-by-side.com"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v):
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @model_validator(mode="after")
    def apply_mode_defaults(self):
        development = self.server_mode == "development"
        if self.rate_limit_voting_per_minute is None:
            self.rate_limit_voting_per_minute = 100 if development else 6
        if self.rate_limit_voting_per_hour is None:
            self.rate_limit_voting_per_hour = 1000 if development else 60
        return self

    @property
    def is_production(self) -> bool:
        return self.server_mode == "production"

    @property
    def is_anonymous_mode(self) -> bool:
        return self.auth_mode == "anonymous"

    def voting_url(self, voting_id: str) -> str:
        """Public URL of a voting page"""
        base = self.base_url if self.is_production else self.voting_base_url
        return f"{base}/#/v/{voting_id}"


# Singleton
settings = Settings()
