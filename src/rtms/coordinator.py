from __future__ import annotations

import asyncio
import logging

from config.settings import Settings
from rtms.connection import SessionConnection
from rtms.media import MediaChannel
from rtms.registry import SessionRegistry
from rtms.signaling import SignalingChannel
from rtms.sinks import LoggingMediaSink, MediaSink
from rtms.transport import Opener, Sleeper, WebSocketOpener

LOGGER = logging.getLogger(__name__)


class SessionCoordinator:
    """Entry points that start and retire RTMS sessions.

    Owns the session registry and wires the two channel managers together:
    media asks signaling to restart through ``_restart_signaling``, and either
    channel ends the session through ``stop``.
    """

    def __init__(
        self,
        *,
        client_id: str | None,
        client_secret: str | None,
        sink: MediaSink | None = None,
        opener: Opener | None = None,
        reconnect_delay: float = 3.0,
        sleep: Sleeper = asyncio.sleep,
        registry: SessionRegistry | None = None,
    ) -> None:
        self._registry = registry if registry is not None else SessionRegistry()
        common = {
            "sink": sink if sink is not None else LoggingMediaSink(),
            "opener": opener if opener is not None else WebSocketOpener(),
            "client_id": client_id,
            "client_secret": client_secret,
            "reconnect_delay": reconnect_delay,
            "sleep": sleep,
            "on_terminal": self.stop,
        }
        self._media = MediaChannel(restart_signaling=self._restart_signaling, **common)
        self._signaling = SignalingChannel(self._registry, self._media, **common)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        sink: MediaSink | None = None,
        opener: Opener | None = None,
    ) -> SessionCoordinator:
        return cls(
            client_id=settings.zoom_client_id,
            client_secret=settings.zoom_client_secret,
            sink=sink,
            opener=opener if opener is not None else WebSocketOpener.from_settings(settings),
            reconnect_delay=settings.reconnect_delay_seconds,
        )

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def active_sessions(self) -> int:
        return len(self._registry)

    def get(self, session_id: str) -> SessionConnection | None:
        return self._registry.get(session_id)

    def start(self, session_id: str, stream_id: str, signaling_url: str) -> SessionConnection | None:
        LOGGER.info("RTMS started for session %s", session_id)
        return self._signaling.connect(session_id, stream_id, signaling_url)

    def stop(self, session_id: str) -> bool:
        """Tear a session down. Returns False if it was not registered."""

        conn = self._registry.get(session_id)
        if conn is None:
            LOGGER.debug("No active session %s to stop", session_id)
            return False

        LOGGER.info("[Cleanup] Closing connections for session %s", session_id)
        conn.disable_reconnect()
        self._signaling.retire(conn)
        self._media.retire(conn)
        self._registry.remove(session_id)
        return True

    def shutdown_all(self) -> None:
        session_ids = self._registry.session_ids()
        if session_ids:
            LOGGER.info("[Shutdown] Stopping %d session(s)", len(session_ids))
        for session_id in session_ids:
            self.stop(session_id)

    async def wait_closed(self, timeout: float | None = 5.0) -> None:
        await asyncio.gather(
            self._signaling.drain(timeout),
            self._media.drain(timeout),
        )

    def _restart_signaling(self, conn: SessionConnection) -> None:
        self._signaling.restart(conn)
