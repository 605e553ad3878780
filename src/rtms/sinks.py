"""Sinks receiving decoded media and side-channel events.

The channels only demultiplex and decode the transport envelope; what happens
to the payload is up to the sink.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Protocol

import numpy as np

from rtms.protocol import EventType

LOGGER = logging.getLogger(__name__)


class MediaSink(Protocol):
    """Callbacks for one RTMS stream. Methods may be sync or async."""

    def on_audio(self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any) -> Awaitable[None] | None: ...

    def on_video(self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any) -> Awaitable[None] | None: ...

    def on_screen_share(
        self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any
    ) -> Awaitable[None] | None: ...

    def on_transcript(self, user_id: Any, user_name: str | None, data: str, timestamp: Any) -> Awaitable[None] | None: ...

    def on_chat(self, user_id: Any, user_name: str | None, data: str, timestamp: Any) -> Awaitable[None] | None: ...

    def on_event(self, kind: EventType, detail: dict[str, Any]) -> Awaitable[None] | None: ...


def pcm16_rms(data: bytes) -> float:
    """RMS level of little-endian 16-bit PCM. A trailing odd byte is ignored."""

    usable = len(data) - (len(data) % 2)
    if usable <= 0:
        return 0.0
    pcm = np.frombuffer(data[:usable], dtype="<i2").astype(np.float32)
    return float(np.sqrt(np.mean(pcm * pcm)))


class LoggingMediaSink:
    """Default sink: log what arrives and drop it."""

    def on_audio(self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any) -> None:
        LOGGER.info("[Audio] %s (%s) - %d bytes, rms=%.1f", user_name, user_id, len(data), pcm16_rms(data))

    def on_video(self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any) -> None:
        LOGGER.info("[Video] %s (%s) - %d bytes", user_name, user_id, len(data))

    def on_screen_share(self, user_id: Any, user_name: str | None, data: bytes, timestamp: Any) -> None:
        LOGGER.info("[ScreenShare] %s (%s) - %d bytes", user_name, user_id, len(data))

    def on_transcript(self, user_id: Any, user_name: str | None, data: str, timestamp: Any) -> None:
        LOGGER.info("[Transcript] %s: %s", user_name, data)

    def on_chat(self, user_id: Any, user_name: str | None, data: str, timestamp: Any) -> None:
        LOGGER.info("[Chat] %s: %s", user_name, data)

    def on_event(self, kind: EventType, detail: dict[str, Any]) -> None:
        if kind is EventType.FIRST_PACKET_TIMESTAMP:
            LOGGER.info("[Event] First packet at %s", detail.get("timestamp"))
        elif kind is EventType.ACTIVE_SPEAKER_CHANGE:
            LOGGER.info("[Event] Active speaker: %s", detail.get("user_name"))
        elif kind is EventType.PARTICIPANT_JOIN:
            LOGGER.info("[Event] Participant joined: %s", detail.get("user_name"))
        elif kind is EventType.PARTICIPANT_LEAVE:
            LOGGER.info("[Event] Participant left: %s", detail.get("user_name"))
