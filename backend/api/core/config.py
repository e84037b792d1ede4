"""Process configuration (environment variables / ``api/.env``).

Business settings such as the send time or message template live in the
``birthday_settings`` table and are edited through the API; only deployment
concerns are configured here.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────────
    database_url: str = Field(..., description="PostgreSQL DSN")
    database_ssl: bool = Field(default=False, description="Require TLS to the database")

    # ── HTTP server ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Admin portal origin(s) allowed by CORS, comma-separated",
    )
    environment: str = "development"
    log_level: str = "INFO"

    # ── WhatsApp gateway ─────────────────────────────────────────────
    whatsapp_api_url: str = Field(default="", description="Gateway base URL")
    whatsapp_api_token: str = Field(default="", description="Gateway API token")
    whatsapp_timeout: float = Field(
        default=15.0, gt=0, description="Seconds allowed for one delivery attempt"
    )
    whatsapp_default_country_code: str = Field(
        default="62", description="Prefixed to phone numbers stored in local form"
    )

    # ── Scheduler ────────────────────────────────────────────────────
    birthday_scheduler_enabled: bool = Field(
        default=True, description="Run the daily birthday trigger in this process"
    )
    birthday_scheduler_poll_interval: float = Field(
        default=300.0, gt=0, description="Longest wait between settings re-reads"
    )

    # ── Heartbeat ────────────────────────────────────────────────────
    enable_keep_alive: bool = True
    keep_alive_interval: int = Field(default=300, gt=0)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith(("postgres://", "postgresql://")):
            raise ValueError("database_url must be a postgres:// or postgresql:// DSN")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            logger.warning(f"Unknown log level '{v}', using INFO")
            return "INFO"
        return level

    @field_validator("whatsapp_default_country_code")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        code = v.strip().lstrip("+")
        if not code.isdigit():
            raise ValueError("whatsapp_default_country_code must be digits, e.g. 62")
        return code

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
