"""Entry point for the Zoom RTMS connector service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.webhook_routes import router as webhook_router
from config.settings import get_settings
from rtms.coordinator import SessionCoordinator

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    coordinator = SessionCoordinator.from_settings(get_settings())
    app.state.coordinator = coordinator
    try:
        yield
    finally:
        LOGGER.info("[Shutdown] Cleaning up...")
        coordinator.shutdown_all()
        await coordinator.wait_closed()
        coordinator.registry.clear()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Zoom RTMS Connector",
    description="Receives Zoom RTMS webhooks and streams session media over signaling/media WebSockets.",
    lifespan=lifespan,
)
app.include_router(webhook_router)


def main() -> None:
    import uvicorn

    LOGGER.info("Webhook endpoint: http://%s:%s%s", settings.host, settings.port, settings.webhook_path)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
