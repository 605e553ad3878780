from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeCoordinator:
    def __init__(self) -> None:
        self.started: list[tuple[str, str, str]] = []
        self.stopped: list[str] = []

    @property
    def active_sessions(self) -> int:
        return len(self.started) - len(self.stopped)

    def start(self, session_id: str, stream_id: str, signaling_url: str):
        self.started.append((session_id, stream_id, signaling_url))
        return None

    def stop(self, session_id: str) -> bool:
        self.stopped.append(session_id)
        return True


@pytest.fixture(scope="session")
def app():
    # Must be set before importing modules that read settings.
    os.environ["ZOOM_CLIENT_ID"] = "client-id"
    os.environ["ZOOM_CLIENT_SECRET"] = "client-secret"
    os.environ["ZOOM_SECRET_TOKEN"] = "webhook-secret"
    os.environ["WEBHOOK_PATH"] = "/webhook"

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.webhook_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def coordinator():
    return FakeCoordinator()


@pytest.fixture()
def client(app, coordinator):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_coordinator] = lambda: coordinator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
