"""API-facing Pydantic models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookEvent(BaseModel):
    """Envelope of a Zoom webhook delivery."""

    model_config = ConfigDict(extra="allow")

    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    event_ts: int | None = None


class UrlValidationResponse(BaseModel):
    plainToken: str
    encryptedToken: str


class WebhookAck(BaseModel):
    status: str = "ok"


class HealthResponse(BaseModel):
    status: str = "running"
    active_sessions: int = Field(serialization_alias="activeSessions")
