"""Per-session connection state.

A ``SessionConnection`` owns one ``ChannelRecord`` for signaling and one for
media. Each record runs its own small state machine:

    idle -> connecting -> authenticated -> ready/streaming -> closed/error

Every socket run is owned by an asyncio task stored on the record. Handlers of
a task that is no longer the record's current task are stale and must not
touch the record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Protocol

from websockets.protocol import State

LOGGER = logging.getLogger(__name__)


class WebSocketLike(Protocol):
    """The subset of a websockets client connection the channels rely on."""

    state: State

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class ChannelState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERROR = "error"


_ALLOWED_TRANSITIONS: dict[ChannelState, frozenset[ChannelState]] = {
    ChannelState.IDLE: frozenset({ChannelState.CONNECTING, ChannelState.CLOSED}),
    ChannelState.CONNECTING: frozenset(
        {ChannelState.CONNECTING, ChannelState.AUTHENTICATED, ChannelState.CLOSED, ChannelState.ERROR}
    ),
    ChannelState.AUTHENTICATED: frozenset(
        {
            ChannelState.CONNECTING,
            ChannelState.READY,
            ChannelState.STREAMING,
            ChannelState.CLOSED,
            ChannelState.ERROR,
        }
    ),
    ChannelState.READY: frozenset({ChannelState.CONNECTING, ChannelState.CLOSED, ChannelState.ERROR}),
    ChannelState.STREAMING: frozenset({ChannelState.CONNECTING, ChannelState.CLOSED, ChannelState.ERROR}),
    ChannelState.ERROR: frozenset({ChannelState.CONNECTING, ChannelState.CLOSED}),
    ChannelState.CLOSED: frozenset({ChannelState.CONNECTING, ChannelState.CLOSED}),
}


def can_transition(current: ChannelState, new: ChannelState) -> bool:
    return new in _ALLOWED_TRANSITIONS[current]


@dataclass(slots=True)
class ChannelRecord:
    name: str
    state: ChannelState = ChannelState.IDLE
    socket: WebSocketLike | None = None
    task: asyncio.Task[Any] | None = None
    retry: asyncio.Task[Any] | None = None
    last_keep_alive: float | None = None

    def transition(self, new: ChannelState) -> bool:
        """Move to ``new`` if the state machine allows it.

        Returns False (and leaves the state untouched) for an illegal move, so
        callers can skip the side effects tied to it.
        """

        if not can_transition(self.state, new):
            LOGGER.warning("[%s] Ignoring transition %s -> %s", self.name, self.state.value, new.value)
            return False
        if new is not self.state:
            LOGGER.debug("[%s] %s -> %s", self.name, self.state.value, new.value)
        self.state = new
        return True

    def owns(self, task: asyncio.Task[Any] | None) -> bool:
        return task is not None and self.task is task

    @property
    def is_open(self) -> bool:
        return self.socket is not None and self.socket.state is State.OPEN

    @property
    def retry_pending(self) -> bool:
        return self.retry is not None and not self.retry.done()


@dataclass(slots=True)
class SessionConnection:
    session_id: str
    stream_id: str
    signaling_url: str
    media_url: str | None = None
    signaling: ChannelRecord = field(default_factory=lambda: ChannelRecord("Signaling"))
    media: ChannelRecord = field(default_factory=lambda: ChannelRecord("Media"))
    _should_reconnect: bool = field(default=True, init=False)

    @property
    def should_reconnect(self) -> bool:
        return self._should_reconnect

    def disable_reconnect(self) -> None:
        # One-way: nothing re-enables reconnection for this entity.
        self._should_reconnect = False
