from __future__ import annotations

import logging

from rtms.connection import SessionConnection

LOGGER = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory map of active RTMS sessions keyed by session id.

    Note: This is a single-process store owned by the coordinator. All access
    happens on the event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionConnection] = {}

    def get(self, session_id: str) -> SessionConnection | None:
        return self._sessions.get(session_id)

    def get_or_create(
        self,
        session_id: str,
        stream_id: str,
        signaling_url: str,
    ) -> tuple[SessionConnection, bool]:
        conn = self._sessions.get(session_id)
        if conn is not None:
            return conn, False

        conn = SessionConnection(session_id=session_id, stream_id=stream_id, signaling_url=signaling_url)
        self._sessions[session_id] = conn
        LOGGER.debug("Registered session %s (stream %s)", session_id, stream_id)
        return conn, True

    def remove(self, session_id: str) -> SessionConnection | None:
        return self._sessions.pop(session_id, None)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
