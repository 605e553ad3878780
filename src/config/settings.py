"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # HTTP front door
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    webhook_path: str = Field(default="/webhook", description="Path Zoom posts webhook events to.")

    # Zoom app credentials
    zoom_client_id: str | None = Field(default=None)
    zoom_client_secret: str | None = Field(
        default=None,
        description="Shared secret used to sign RTMS handshakes.",
    )
    zoom_secret_token: str | None = Field(
        default=None,
        description="Webhook secret token used to answer endpoint URL validation.",
    )

    # Reconnection
    reconnect_delay_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Fixed delay before a dropped signaling or media socket is reopened.",
    )

    # WebSocket transport
    ws_ping_interval_seconds: float | None = Field(
        default=20.0,
        description="Protocol-level ping interval. None disables pings.",
    )
    ws_ping_timeout_seconds: float | None = Field(
        default=20.0,
        description="Close the socket when a ping is not answered within this window.",
    )
    ws_open_timeout_seconds: float = Field(default=10.0, gt=0.0)
    ws_verify_tls: bool = Field(
        default=True,
        description="If false, RTMS server certificates are not verified.",
    )

    @field_validator("webhook_path")
    @classmethod
    def ensure_leading_slash(cls, value: str) -> str:
        value = value.strip() or "/webhook"
        if not value.startswith("/"):
            value = "/" + value
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
