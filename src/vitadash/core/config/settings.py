"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VitaDash server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; the dashboard exposes device control.
    vitadash_host: str = "127.0.0.1"
    vitadash_port: int = 8010
    vitadash_log_level: str = "info"
    # Binding to a non-loopback host requires this explicit opt-in.
    vitadash_allow_insecure_bind: bool = False

    # Storage (dispenser data bank)
    db_path: str = "~/.vitadash/dispenser.db"
    encryption_key: str = ""

    # Device telemetry
    activity_log_capacity: int = 50
    telemetry_source: Literal["push", "mock"] = "push"
    device_scope: str = "default"

    # Reference tables (empty -> bundled sample tables)
    food_catalog_path: str = ""
    disease_rules_path: str = ""
    serving_defaults_path: str = ""

    # Authorization: comma-separated emails (empty -> allowlist disabled)
    allowed_emails: str = ""

    @field_validator("activity_log_capacity")
    @classmethod
    def _positive_capacity(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("activity_log_capacity must be positive")
        return value

    @property
    def allowed_email_list(self) -> list[str]:
        return [e.strip() for e in self.allowed_emails.split(",") if e.strip()]


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
