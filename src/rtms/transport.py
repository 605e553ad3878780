from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Awaitable, Callable

import websockets
from websockets.exceptions import WebSocketException

from config.settings import Settings
from rtms.connection import WebSocketLike

LOGGER = logging.getLogger(__name__)

Opener = Callable[[str], Awaitable[WebSocketLike]]
Sleeper = Callable[[float], Awaitable[None]]

# Failures raised while opening or reading a socket. They drive the
# error -> close -> reconnect path instead of propagating.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (OSError, asyncio.TimeoutError, WebSocketException)


def _insecure_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class WebSocketOpener:
    """Open RTMS client sockets with the configured keep-alive and TLS options."""

    def __init__(
        self,
        *,
        ping_interval: float | None = 20.0,
        ping_timeout: float | None = 20.0,
        open_timeout: float = 10.0,
        verify_tls: bool = True,
    ) -> None:
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._open_timeout = open_timeout
        self._verify_tls = verify_tls

    @classmethod
    def from_settings(cls, settings: Settings) -> WebSocketOpener:
        return cls(
            ping_interval=settings.ws_ping_interval_seconds,
            ping_timeout=settings.ws_ping_timeout_seconds,
            open_timeout=settings.ws_open_timeout_seconds,
            verify_tls=settings.ws_verify_tls,
        )

    async def __call__(self, url: str) -> WebSocketLike:
        LOGGER.debug("Opening WebSocket %s", url)
        kwargs = {}
        if url.lower().startswith("wss://") and not self._verify_tls:
            kwargs["ssl"] = _insecure_ssl_context()

        return await websockets.connect(
            url,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
            open_timeout=self._open_timeout,
            **kwargs,
        )
