from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any, Final

from rtms.channel import ChannelManager
from rtms.connection import ChannelState, SessionConnection, WebSocketLike
from rtms.errors import InvalidEndpointError
from rtms.protocol import HANDSHAKE_OK, MsgType, client_ready_ack, media_handshake, msg_type_of, require_websocket_url
from rtms.reconnect import MediaRecovery, plan_media_recovery

LOGGER = logging.getLogger(__name__)

# msg_type -> (sink method, payload is base64 binary)
_MEDIA_ROUTES: Final[dict[MsgType, tuple[str, bool]]] = {
    MsgType.MEDIA_DATA_AUDIO: ("on_audio", True),
    MsgType.MEDIA_DATA_VIDEO: ("on_video", True),
    MsgType.MEDIA_DATA_SHARE: ("on_screen_share", True),
    MsgType.MEDIA_DATA_TRANSCRIPT: ("on_transcript", False),
    MsgType.MEDIA_DATA_CHAT: ("on_chat", False),
}


class MediaChannel(ChannelManager):
    """Data channel of an RTMS session.

    Opened by signaling once it knows the media endpoint. Demultiplexes media
    frames to the sink and reconnects on its own while signaling is healthy.
    """

    channel = "media"
    label = "Media"

    def __init__(
        self,
        *,
        restart_signaling: Callable[[SessionConnection], Any] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._restart_signaling = restart_signaling

    def connect(self, conn: SessionConnection, media_url: str, signaling_socket: WebSocketLike | None) -> bool:
        LOGGER.info("[Media] Connecting for session %s...", conn.session_id)
        try:
            url = require_websocket_url(media_url)
        except InvalidEndpointError as exc:
            LOGGER.error("[Media] %s", exc.detail)
            return False

        conn.media_url = url
        self._launch(conn, url, signaling_socket)
        return True

    async def _on_open(self, conn: SessionConnection, ws: WebSocketLike, peer: WebSocketLike | None) -> bool:
        signature = self._sign(conn)
        if signature is None:
            return False

        LOGGER.info("[Media] Sending data handshake...")
        await self._send(ws, media_handshake(conn.session_id, conn.stream_id, signature))
        conn.media.transition(ChannelState.AUTHENTICATED)
        return True

    async def _dispatch(
        self,
        conn: SessionConnection,
        ws: WebSocketLike,
        peer: WebSocketLike | None,
        message: dict[str, Any],
    ) -> None:
        msg_type = msg_type_of(message)

        if msg_type is MsgType.DATA_HANDSHAKE_RESP:
            await self._on_handshake_response(conn, peer, message)
        elif msg_type is MsgType.KEEP_ALIVE_REQ:
            await self._answer_keep_alive(conn, ws, message)
        elif msg_type in _MEDIA_ROUTES:
            await self._on_media(msg_type, message)
        else:
            LOGGER.debug("[Media] Unhandled msg_type: %s", message.get("msg_type"))

    async def _on_handshake_response(
        self,
        conn: SessionConnection,
        signaling_socket: WebSocketLike | None,
        message: dict[str, Any],
    ) -> None:
        status = message.get("status_code")
        if status != HANDSHAKE_OK:
            LOGGER.error("[Media] Handshake failed: status_code=%s", status)
            return

        if not conn.media.transition(ChannelState.STREAMING):
            return

        LOGGER.info("[Media] Handshake successful - requesting stream start")
        if signaling_socket is None:
            LOGGER.warning("[Media] No signaling socket to request stream start for %s", conn.session_id)
            return
        await self._send(signaling_socket, client_ready_ack(conn.stream_id))

    async def _on_media(self, msg_type: MsgType, message: dict[str, Any]) -> None:
        content = message.get("content")
        if not isinstance(content, dict) or not content.get("data"):
            return

        method, binary = _MEDIA_ROUTES[msg_type]
        data = content["data"]
        if binary:
            try:
                payload: bytes | str = base64.b64decode(data, validate=True)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("[Media] Dropping %s frame with bad payload: %s", msg_type.name, exc)
                return
        else:
            payload = str(data)

        await self._deliver(
            getattr(self._sink, method),
            content.get("user_id"),
            content.get("user_name"),
            payload,
            content.get("timestamp"),
        )

    def _after_close(self, conn: SessionConnection) -> None:
        plan = plan_media_recovery(conn)
        if plan is MediaRecovery.MEDIA_ONLY:
            self._schedule_retry(conn, lambda: self._reconnect(conn))
        elif plan is MediaRecovery.RESTART_SIGNALING:
            LOGGER.warning("[Media] Signaling not ready - restarting both connections...")
            if self._restart_signaling is not None:
                self._restart_signaling(conn)

    def _reconnect(self, conn: SessionConnection) -> None:
        if conn.media_url is None:
            return
        self.connect(conn, conn.media_url, conn.signaling.socket)
