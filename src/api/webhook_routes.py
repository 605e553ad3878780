"""Zoom webhook front door.

Translates webhook deliveries into coordinator calls:
- ``endpoint.url_validation``: answer the CRC challenge.
- ``session.rtms_started`` / ``meeting.rtms_started``: open the RTMS session.
- ``session.rtms_stopped`` / ``meeting.rtms_stopped``: tear it down.

Events are acknowledged right away; the connection outcome only shows up in
the logs.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_coordinator
from api.schemas import HealthResponse, UrlValidationResponse, WebhookAck, WebhookEvent
from config.settings import get_settings
from rtms.coordinator import SessionCoordinator
from rtms.errors import MissingCredentialsError
from rtms.signature import url_validation_token

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["rtms"])

URL_VALIDATION_EVENT = "endpoint.url_validation"
STARTED_EVENTS = frozenset({"session.rtms_started", "meeting.rtms_started"})
STOPPED_EVENTS = frozenset({"session.rtms_stopped", "meeting.rtms_stopped"})


def _session_id(payload: dict[str, Any]) -> str | None:
    value = payload.get("session_id") or payload.get("meeting_uuid")
    return str(value) if value else None


@router.get("/", response_model=HealthResponse)
async def health(coordinator: SessionCoordinator = Depends(get_coordinator)) -> HealthResponse:
    return HealthResponse(active_sessions=coordinator.active_sessions)


async def zoom_webhook(
    body: WebhookEvent,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> UrlValidationResponse | WebhookAck:
    LOGGER.info("[Webhook] Event received: %s", body.event)
    payload = body.payload

    if body.event == URL_VALIDATION_EVENT and payload.get("plainToken"):
        plain_token = str(payload["plainToken"])
        try:
            encrypted = url_validation_token(get_settings().zoom_secret_token, plain_token)
        except MissingCredentialsError as exc:
            LOGGER.error("[Webhook] Cannot validate URL: %s", exc.detail)
            raise HTTPException(status_code=500, detail="ZOOM_SECRET_TOKEN not configured") from exc

        LOGGER.info("[Webhook] URL validation response sent")
        return UrlValidationResponse(plainToken=plain_token, encryptedToken=encrypted)

    if body.event in STARTED_EVENTS:
        session_id = _session_id(payload)
        stream_id = payload.get("rtms_stream_id")
        if not session_id or not stream_id:
            LOGGER.warning("[Webhook] %s without session/stream id", body.event)
            return WebhookAck(status="ignored")

        coordinator.start(session_id, str(stream_id), str(payload.get("server_urls") or ""))
        return WebhookAck()

    if body.event in STOPPED_EVENTS:
        session_id = _session_id(payload)
        if session_id:
            LOGGER.info("[Webhook] RTMS stopped for session %s", session_id)
            coordinator.stop(session_id)
        return WebhookAck()

    return WebhookAck(status="ignored")


router.add_api_route(
    get_settings().webhook_path,
    zoom_webhook,
    methods=["POST"],
    name="zoom_webhook",
)
