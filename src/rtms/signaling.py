from __future__ import annotations

import logging
from typing import Any

from rtms.channel import ChannelManager
from rtms.connection import ChannelState, SessionConnection, WebSocketLike
from rtms.errors import InvalidEndpointError
from rtms.media import MediaChannel
from rtms.protocol import (
    HANDSHAKE_OK,
    EventType,
    MsgType,
    event_subscription,
    is_terminal_stream_state,
    media_server_url,
    msg_type_of,
    require_websocket_url,
    signaling_handshake,
)
from rtms.reconnect import signaling_recovering
from rtms.registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

_LIVE_STATES = frozenset({ChannelState.CONNECTING, ChannelState.AUTHENTICATED, ChannelState.READY})


class SignalingChannel(ChannelManager):
    """Control channel of an RTMS session.

    Authenticates the session, learns the media endpoint and opens the media
    channel, relays side-channel events and reports the end of the stream.
    """

    channel = "signaling"
    label = "Signaling"

    def __init__(self, registry: SessionRegistry, media: MediaChannel, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._registry = registry
        self._media = media

    def connect(
        self,
        session_id: str,
        stream_id: str,
        endpoint_url: str,
        existing: SessionConnection | None = None,
    ) -> SessionConnection | None:
        LOGGER.info("[Signaling] Connecting for session %s...", session_id)
        try:
            url = require_websocket_url(endpoint_url)
        except InvalidEndpointError as exc:
            LOGGER.error("[Signaling] %s", exc.detail)
            return None

        conn = existing
        if conn is None:
            conn, created = self._registry.get_or_create(session_id, stream_id, url)
            if not created and (conn.signaling.state in _LIVE_STATES or conn.signaling.retry_pending):
                LOGGER.info("[Signaling] Session %s already active; reusing it", session_id)
                return conn

        conn.signaling_url = url
        self._launch(conn, url)
        return conn

    def restart(self, conn: SessionConnection) -> None:
        """Re-establish signaling (and through it, media) for ``conn``."""

        if not conn.should_reconnect:
            return
        if signaling_recovering(conn):
            LOGGER.info("[Signaling] Already reconnecting session %s", conn.session_id)
            return
        LOGGER.warning("[Signaling] Restarting signaling for session %s", conn.session_id)
        self.connect(conn.session_id, conn.stream_id, conn.signaling_url, existing=conn)

    async def _on_open(self, conn: SessionConnection, ws: WebSocketLike, peer: WebSocketLike | None) -> bool:
        signature = self._sign(conn)
        if signature is None:
            return False

        LOGGER.info("[Signaling] Sending handshake...")
        await self._send(ws, signaling_handshake(conn.session_id, conn.stream_id, signature))
        # The handshake is not acknowledged before we move on; the response
        # decides whether the session becomes ready.
        conn.signaling.transition(ChannelState.AUTHENTICATED)
        return True

    async def _dispatch(
        self,
        conn: SessionConnection,
        ws: WebSocketLike,
        peer: WebSocketLike | None,
        message: dict[str, Any],
    ) -> None:
        msg_type = msg_type_of(message)

        if msg_type is MsgType.SIGNALING_HANDSHAKE_RESP:
            await self._on_handshake_response(conn, ws, message)
        elif msg_type is MsgType.EVENT_UPDATE:
            await self._on_event(message)
        elif msg_type is MsgType.STREAM_STATE_UPDATE:
            LOGGER.info("[Signaling] Stream state changed: %s %s", message.get("state"), message.get("reason", ""))
            if is_terminal_stream_state(message):
                LOGGER.info("[Signaling] Stream ended for session %s", conn.session_id)
                if self._on_terminal is not None:
                    self._on_terminal(conn.session_id)
        elif msg_type is MsgType.SESSION_STATE_UPDATE:
            LOGGER.info("[Signaling] Session state changed: %s", message.get("state"))
        elif msg_type is MsgType.KEEP_ALIVE_REQ:
            await self._answer_keep_alive(conn, ws, message)
        else:
            LOGGER.info("[Signaling] Unhandled msg_type: %s", message.get("msg_type"))

    async def _on_handshake_response(self, conn: SessionConnection, ws: WebSocketLike, message: dict[str, Any]) -> None:
        status = message.get("status_code")
        if status != HANDSHAKE_OK:
            LOGGER.error("[Signaling] Handshake failed: status_code=%s", status)
            return

        if not conn.signaling.transition(ChannelState.READY):
            return

        media_url = media_server_url(message)
        LOGGER.info("[Signaling] Handshake OK - media URL: %s", media_url)
        if media_url is None:
            LOGGER.error("[Signaling] Handshake response for %s carries no media URL", conn.session_id)
        else:
            self._media.connect(conn, media_url, ws)

        await self._send(ws, event_subscription())

    async def _on_event(self, message: dict[str, Any]) -> None:
        event = message.get("event")
        if not isinstance(event, dict):
            return

        try:
            kind = EventType(event.get("event_type"))
        except (TypeError, ValueError):
            LOGGER.info("[Event] Unknown event_type: %s", event.get("event_type"))
            return

        await self._deliver(self._sink.on_event, kind, event)

    def _after_close(self, conn: SessionConnection) -> None:
        # Media cannot outlive its signaling session; it comes back after the
        # next successful handshake.
        self._media.retire(conn)
        self._schedule_retry(
            conn,
            lambda: self.connect(conn.session_id, conn.stream_id, conn.signaling_url, existing=conn),
        )
