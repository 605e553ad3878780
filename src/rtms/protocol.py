"""RTMS wire protocol: message codes, message builders and frame parsing.

Both channels exchange JSON text frames carrying a numeric ``msg_type``. The
numeric codes are fixed by the remote service.
"""

from __future__ import annotations

import json
from enum import IntEnum
from typing import Any, Final
from urllib.parse import urlsplit

from rtms.errors import InvalidEndpointError, ProtocolError


class MsgType(IntEnum):
    SIGNALING_HANDSHAKE_REQ = 1
    SIGNALING_HANDSHAKE_RESP = 2
    DATA_HANDSHAKE_REQ = 3
    DATA_HANDSHAKE_RESP = 4
    EVENT_SUBSCRIPTION = 5
    EVENT_UPDATE = 6
    CLIENT_READY_ACK = 7
    STREAM_STATE_UPDATE = 8
    SESSION_STATE_UPDATE = 9
    KEEP_ALIVE_REQ = 12
    KEEP_ALIVE_RESP = 13
    MEDIA_DATA_AUDIO = 14
    MEDIA_DATA_VIDEO = 15
    MEDIA_DATA_SHARE = 16
    MEDIA_DATA_TRANSCRIPT = 17
    MEDIA_DATA_CHAT = 18


class EventType(IntEnum):
    FIRST_PACKET_TIMESTAMP = 1
    ACTIVE_SPEAKER_CHANGE = 2
    PARTICIPANT_JOIN = 3
    PARTICIPANT_LEAVE = 4


HANDSHAKE_OK: Final[int] = 0
PROTOCOL_VERSION: Final[int] = 1

# Stream state / reason pair announcing that the stream was ended for good.
TERMINAL_STREAM_STATE: Final[int] = 4
TERMINAL_STREAM_REASON: Final[int] = 6

# Bitmask requesting every media kind.
MEDIA_TYPE_ALL: Final[int] = 32

SUBSCRIBED_EVENTS: Final[tuple[EventType, ...]] = (
    EventType.ACTIVE_SPEAKER_CHANGE,
    EventType.PARTICIPANT_JOIN,
    EventType.PARTICIPANT_LEAVE,
)

MEDIA_PARAMS: Final[dict[str, dict[str, int]]] = {
    "audio": {
        "content_type": 1,  # RTP
        "sample_rate": 1,  # 16 kHz
        "channel": 1,  # mono
        "codec": 1,  # L16
        "data_opt": 1,  # mixed stream
        "send_rate": 100,  # ms between packets
    },
    "video": {
        "codec": 7,  # H.264
        "data_opt": 3,  # active speaker only
        "resolution": 2,  # 720p
        "fps": 25,
    },
    "deskshare": {
        "codec": 5,  # JPEG
        "resolution": 2,
        "fps": 1,
    },
    "chat": {"content_type": 5},  # text
    "transcript": {"content_type": 5},
}

WEBSOCKET_SCHEMES: Final[frozenset[str]] = frozenset({"ws", "wss"})


def is_websocket_url(url: object) -> bool:
    if not isinstance(url, str) or not url:
        return False
    parts = urlsplit(url)
    return parts.scheme.lower() in WEBSOCKET_SCHEMES and bool(parts.netloc)


def require_websocket_url(url: object) -> str:
    if not is_websocket_url(url):
        raise InvalidEndpointError(f"Invalid WebSocket URL: {url!r}")
    return str(url)


def parse_message(raw: str | bytes) -> dict[str, Any]:
    """Decode a JSON frame.

    Raises:
        ProtocolError: if the frame is not a JSON object.
    """

    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("Frame is not UTF-8 text") from exc

    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Invalid JSON: {exc.msg}") from exc

    if not isinstance(message, dict):
        raise ProtocolError("Frame is not a JSON object")
    return message


def msg_type_of(message: dict[str, Any]) -> MsgType | None:
    try:
        return MsgType(message.get("msg_type"))
    except (TypeError, ValueError):
        return None


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


def signaling_handshake(session_id: str, stream_id: str, signature: str) -> dict[str, Any]:
    return {
        "msg_type": int(MsgType.SIGNALING_HANDSHAKE_REQ),
        "meeting_uuid": session_id,
        "session_id": session_id,
        "rtms_stream_id": stream_id,
        "signature": signature,
    }


def media_handshake(session_id: str, stream_id: str, signature: str) -> dict[str, Any]:
    return {
        "msg_type": int(MsgType.DATA_HANDSHAKE_REQ),
        "protocol_version": PROTOCOL_VERSION,
        "meeting_uuid": session_id,
        "session_id": session_id,
        "rtms_stream_id": stream_id,
        "signature": signature,
        "media_type": MEDIA_TYPE_ALL,
        "payload_encryption": False,
        "media_params": {kind: dict(params) for kind, params in MEDIA_PARAMS.items()},
    }


def event_subscription(events: tuple[EventType, ...] = SUBSCRIBED_EVENTS) -> dict[str, Any]:
    return {
        "msg_type": int(MsgType.EVENT_SUBSCRIPTION),
        "events": [{"event_type": int(event), "subscribe": True} for event in events],
    }


def client_ready_ack(stream_id: str) -> dict[str, Any]:
    return {"msg_type": int(MsgType.CLIENT_READY_ACK), "rtms_stream_id": stream_id}


def keep_alive_response(timestamp: Any) -> dict[str, Any]:
    return {"msg_type": int(MsgType.KEEP_ALIVE_RESP), "timestamp": timestamp}


def media_server_url(message: dict[str, Any]) -> str | None:
    """Extract the media endpoint from a successful signaling handshake response."""

    media_server = message.get("media_server") or {}
    server_urls = media_server.get("server_urls") if isinstance(media_server, dict) else None
    if not isinstance(server_urls, dict):
        return None
    url = server_urls.get("audio") or server_urls.get("all")
    return str(url) if url else None


def is_terminal_stream_state(message: dict[str, Any]) -> bool:
    return message.get("state") == TERMINAL_STREAM_STATE and message.get("reason") == TERMINAL_STREAM_REASON
