"""Domain-specific exceptions for RTMS connection handling.

Safe to import from the API layer; nothing here opens sockets.
"""

from __future__ import annotations


class RtmsError(Exception):
    default_detail: str = "RTMS error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MissingCredentialsError(RtmsError):
    default_detail = "RTMS credentials are not configured."


class InvalidEndpointError(RtmsError):
    default_detail = "Endpoint is not a WebSocket URL."


class ProtocolError(RtmsError):
    default_detail = "Malformed RTMS message."
