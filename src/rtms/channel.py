"""Plumbing shared by the signaling and media channel managers.

A manager owns exactly one ``ChannelRecord`` of every ``SessionConnection``
(selected by ``channel``) and is the only code that opens, closes or replaces
that record's socket. Each socket lives inside one task running ``_run``:

    open -> (closed right away if reconnection was disabled meanwhile)
         -> handshake -> dispatch frames until the socket ends
         -> error/close handlers -> subclass decides about reconnecting
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

from rtms.connection import ChannelRecord, ChannelState, SessionConnection, WebSocketLike
from rtms.errors import MissingCredentialsError, ProtocolError
from rtms.protocol import encode, keep_alive_response, parse_message
from rtms.signature import generate_signature
from rtms.sinks import MediaSink
from rtms.transport import TRANSPORT_ERRORS, Opener, Sleeper

LOGGER = logging.getLogger(__name__)

TerminalCallback = Callable[[str], Any]


class ChannelManager(ABC):
    channel: str = ""
    label: str = ""

    def __init__(
        self,
        *,
        sink: MediaSink,
        opener: Opener,
        client_id: str | None,
        client_secret: str | None,
        reconnect_delay: float = 3.0,
        sleep: Sleeper = asyncio.sleep,
        on_terminal: TerminalCallback | None = None,
    ) -> None:
        self._sink = sink
        self._open = opener
        self._client_id = client_id
        self._client_secret = client_secret
        self._reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._on_terminal = on_terminal
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _on_open(self, conn: SessionConnection, ws: WebSocketLike, peer: WebSocketLike | None) -> bool:
        """Send the channel handshake. Return False to end the run."""

    @abstractmethod
    async def _dispatch(
        self,
        conn: SessionConnection,
        ws: WebSocketLike,
        peer: WebSocketLike | None,
        message: dict[str, Any],
    ) -> None:
        """Handle one parsed frame."""

    @abstractmethod
    def _after_close(self, conn: SessionConnection) -> None:
        """Decide how to recover once the owned socket closed."""

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def record(self, conn: SessionConnection) -> ChannelRecord:
        return getattr(conn, self.channel)

    def retire(self, conn: SessionConnection) -> None:
        """Close this channel for ``conn`` without triggering reconnection.

        The socket close is fire-and-forget. A socket still opening is closed
        by its own task once the open completes.
        """

        record = self.record(conn)
        self._detach(record)
        record.transition(ChannelState.CLOSED)

    def _detach(self, record: ChannelRecord) -> None:
        if record.retry is not None and record.retry is not asyncio.current_task():
            record.retry.cancel()
        record.retry = None

        socket = record.socket
        record.task = None
        record.socket = None
        if socket is not None:
            self._spawn(self._close_quietly(socket))

    def _launch(self, conn: SessionConnection, url: str, peer: WebSocketLike | None = None) -> None:
        record = self.record(conn)
        self._detach(record)
        record.transition(ChannelState.CONNECTING)
        record.task = self._spawn(self._run(conn, url, peer))

    # ------------------------------------------------------------------
    # Socket lifecycle
    # ------------------------------------------------------------------

    async def _run(self, conn: SessionConnection, url: str, peer: WebSocketLike | None) -> None:
        task = asyncio.current_task()
        record = self.record(conn)

        try:
            ws = await self._open(url)
        except TRANSPORT_ERRORS as exc:
            self._handle_error(conn, task, exc)
            self._handle_close(conn, task)
            return

        if not record.owns(task):
            LOGGER.info("[%s] Socket for %s opened after teardown; closing", self.label, conn.session_id)
            await self._close_quietly(ws)
            return

        record.socket = ws
        try:
            if not conn.should_reconnect:
                LOGGER.info("[%s] Reconnection disabled for %s; closing", self.label, conn.session_id)
                return
            if not await self._on_open(conn, ws, peer):
                return

            async for raw in ws:
                if not conn.should_reconnect or not record.owns(task):
                    break
                try:
                    message = parse_message(raw)
                except ProtocolError as exc:
                    LOGGER.warning("[%s] Discarding frame: %s", self.label, exc.detail)
                    continue
                await self._dispatch(conn, ws, peer, message)
        except TRANSPORT_ERRORS as exc:
            self._handle_error(conn, task, exc)
        finally:
            await self._close_quietly(ws)
            self._handle_close(conn, task)

    def _handle_error(self, conn: SessionConnection, task: asyncio.Task[Any] | None, exc: BaseException) -> None:
        record = self.record(conn)
        if not record.owns(task):
            LOGGER.debug("[%s] Ignoring error from stale socket: %s", self.label, exc)
            return
        LOGGER.error("[%s] Error for %s: %s", self.label, conn.session_id, exc)
        record.transition(ChannelState.ERROR)

    def _handle_close(self, conn: SessionConnection, task: asyncio.Task[Any] | None) -> None:
        record = self.record(conn)
        if not record.owns(task):
            LOGGER.debug("[%s] Ignoring close of stale socket for %s", self.label, conn.session_id)
            return

        LOGGER.warning("[%s] Connection closed for %s", self.label, conn.session_id)
        record.socket = None
        record.transition(ChannelState.CLOSED)
        if not conn.should_reconnect:
            return
        self._after_close(conn)

    def _schedule_retry(self, conn: SessionConnection, action: Callable[[], Any]) -> None:
        record = self.record(conn)
        if record.retry is not None:
            record.retry.cancel()

        async def _retry_later() -> None:
            await self._sleep(self._reconnect_delay)
            if record.retry is not asyncio.current_task():
                return
            record.retry = None
            if not conn.should_reconnect:
                LOGGER.info("[%s] Skipping reconnect for %s; session stopped", self.label, conn.session_id)
                return
            action()

        LOGGER.info("[%s] Reconnecting in %ss...", self.label, self._reconnect_delay)
        record.retry = self._spawn(_retry_later())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sign(self, conn: SessionConnection) -> str | None:
        try:
            return generate_signature(self._client_id, self._client_secret, conn.session_id, conn.stream_id)
        except MissingCredentialsError as exc:
            LOGGER.error("[%s] Cannot authenticate session %s: %s", self.label, conn.session_id, exc.detail)
            if self._on_terminal is not None:
                self._on_terminal(conn.session_id)
            return None

    async def _send(self, ws: WebSocketLike, message: dict[str, Any]) -> bool:
        try:
            await ws.send(encode(message))
        except TRANSPORT_ERRORS as exc:
            LOGGER.warning("[%s] Send of msg_type=%s failed: %s", self.label, message.get("msg_type"), exc)
            return False
        return True

    async def _answer_keep_alive(self, conn: SessionConnection, ws: WebSocketLike, message: dict[str, Any]) -> None:
        self.record(conn).last_keep_alive = time.time()
        await self._send(ws, keep_alive_response(message.get("timestamp")))

    async def _deliver(self, handler: Callable[..., Any], *args: Any) -> None:
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            LOGGER.exception("[%s] Sink %s failed", self.label, getattr(handler, "__name__", handler))

    @staticmethod
    async def _close_quietly(ws: WebSocketLike) -> None:
        try:
            await ws.close()
        except TRANSPORT_ERRORS as exc:
            LOGGER.debug("Ignoring error while closing socket: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for background tasks (socket runs, closes, timers) to finish."""

        current = asyncio.current_task()
        pending = [task for task in self._background if task is not current and not task.done()]
        if not pending:
            return

        _done, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            LOGGER.warning("[%s] Cancelled %d task(s) still running at shutdown", self.label, len(still_pending))
