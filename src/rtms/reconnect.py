"""Reconnection policy shared by the signaling and media channels.

Decisions only: no timers, no sockets. Retries are unbounded at a fixed
delay; the only thing that ends them is ``SessionConnection.disable_reconnect``.
"""

from __future__ import annotations

from enum import Enum

from rtms.connection import ChannelState, SessionConnection


class MediaRecovery(str, Enum):
    NONE = "none"
    MEDIA_ONLY = "media_only"
    RESTART_SIGNALING = "restart_signaling"


def plan_media_recovery(conn: SessionConnection) -> MediaRecovery:
    """Decide what to do after the media socket closed.

    A healthy signaling channel (ready, socket open) can hand out the media
    endpoint again, so only media is reopened. Anything else means signaling
    has to be re-established first.
    """

    if not conn.should_reconnect:
        return MediaRecovery.NONE
    if conn.signaling.state is ChannelState.READY and conn.signaling.is_open:
        return MediaRecovery.MEDIA_ONLY
    return MediaRecovery.RESTART_SIGNALING


def signaling_recovering(conn: SessionConnection) -> bool:
    return conn.signaling.state is ChannelState.CONNECTING or conn.signaling.retry_pending
