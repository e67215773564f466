"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Outreach Mailbox"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Secrets at rest (required: the service refuses to start without it)
    encryption_key: SecretStr
    encryption_salt: str = "outreachmail-vault"

    # Storage
    sqlite_db_path: str = "data/outreachmail.db"

    # Mailbox
    mailbox_scope: str = "team"
    google_client_id: str | None = None
    google_client_secret: SecretStr | None = None
    google_pubsub_topic: str | None = Field(
        default=None,
        validation_alias=AliasChoices("google_pub_sub_topic", "google_pubsub_topic"),
    )
    inbound_label: str = "INBOX"
    self_sent_label: str = "SENT"
    clear_labels: str = ""

    # Sync
    poll_interval_seconds: int = Field(default=300, ge=5)
    http_timeout_seconds: float = 30.0
    session_ttl_seconds: int = 3000

    @field_validator("encryption_key")
    @classmethod
    def _key_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("ENCRYPTION_KEY is not set.")
        return value

    @computed_field
    @property
    def clear_label_list(self) -> list[str]:
        """Labels removed from stored replies, from comma-separated CLEAR_LABELS."""
        return [x.strip() for x in self.clear_labels.split(",") if x.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
