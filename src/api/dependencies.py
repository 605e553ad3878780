"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules and ``main``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:  # pragma: no cover
    from rtms.coordinator import SessionCoordinator


def get_coordinator(request: Request) -> SessionCoordinator:
    # Built by the application lifespan.
    return request.app.state.coordinator
