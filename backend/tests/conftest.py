from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from lobbyha import auth, config, store
from lobbyha.main import app
from lobbyha.services.activity_log import ActivityLog
from lobbyha.services.entity_cache import EntityCache
from lobbyha.services.ha_client import HAClient
from lobbyha.services.relay_manager import RelayManager
from lobbyha.settings import settings

HA_URL = "http://ha.local:8123"
HA_TOKEN = "long-lived-token"

KITCHEN = {
    "entity_id": "light.kitchen",
    "state": "on",
    "attributes": {"friendly_name": "Kitchen Light", "area": "Kitchen"},
}
BEDROOM = {
    "entity_id": "light.bedroom",
    "state": "off",
    "attributes": {"friendly_name": "Bedroom Light", "area": "Bedroom"},
}
THERMOSTAT = {
    "entity_id": "climate.lobby",
    "state": "heat",
    "attributes": {"friendly_name": "Lobby Thermostat", "device_class": "temperature"},
}


class FakeHA:
    """Minimal Home Assistant REST API behind an ``httpx.MockTransport``."""

    def __init__(self, states: list[dict] | None = None) -> None:
        self.states = list(states if states is not None else [KITCHEN, BEDROOM, THERMOSTAT])
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.headers.get("Authorization") != f"Bearer {HA_TOKEN}":
            return httpx.Response(401, json={"message": "Unauthorized"})
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "boom"})

        if path == "/api/":
            return httpx.Response(200, json={"message": "API running."})
        if path == "/api/states":
            return httpx.Response(200, json=self.states)
        if path.startswith("/api/states/"):
            entity_id = path.removeprefix("/api/states/")
            for s in self.states:
                if s["entity_id"] == entity_id:
                    return httpx.Response(200, json=s)
            return httpx.Response(404, json={"message": "Entity not found."})
        if path.startswith("/api/services/"):
            body = json.loads(request.content or b"{}")
            ids = body.get("entity_id") or []
            ids = [ids] if isinstance(ids, str) else ids
            return httpx.Response(200, json=[s for s in self.states if s["entity_id"] in ids])
        if path.startswith("/api/history/period"):
            return httpx.Response(200, json=[[s] for s in self.states])
        if path == "/api/error_log":
            return httpx.Response(200, text="all good\n", headers={"content-type": "text/plain"})
        if path.startswith("/api/camera_proxy/"):
            return httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/jpeg"})
        if path == "/api/broken":
            return httpx.Response(200, content=b"{truncated", headers={"content-type": "application/json"})
        return httpx.Response(404, json={"message": "Not found"})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point the store at a fresh temp directory and blank out the environment layer."""
    for field in ("ha_url", "ha_token", "port", "log_level", "allowed_entities", "static_dir"):
        monkeypatch.setattr(settings, field, "")
    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    config.reset()
    yield tmp_path / "data"
    config.reset()


@pytest.fixture(autouse=True)
def reset_state():
    """Clear sessions and reset service singletons between tests."""
    auth.admin_sessions.clear()
    auth.guest_sessions.clear()
    HAClient._instance = None
    EntityCache._instance = None
    RelayManager._instance = None
    ActivityLog._instance = None
    yield
    auth.admin_sessions.clear()
    auth.guest_sessions.clear()
    HAClient._instance = None
    EntityCache._instance = None
    RelayManager._instance = None
    ActivityLog._instance = None


@pytest.fixture
def fake_ha():
    """Route every HAClient request to a FakeHA instance."""
    ha = FakeHA()
    HAClient._instance = HAClient(transport=httpx.MockTransport(ha.handler))
    return ha


@pytest.fixture
def configured():
    """Store HA credentials as if setup had been completed."""
    store.update_settings({"HA_URL": HA_URL, "HA_TOKEN": HA_TOKEN})
    return config.load_config()


def allow_entities(*entity_ids: str) -> None:
    store.update_settings({"ALLOWED_ENTITIES": ",".join(entity_ids)})
    config.load_config()


def enable_pins(*pins: dict) -> None:
    auth.set_guest_pin_enabled(True)
    auth.save_guest_pins(pins)


@pytest.fixture
def client():
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    resp = client.post("/api/admin/login", json={"password": "admin"})
    assert resp.status_code == 200
    return {"X-Admin-Session": resp.json()["sessionId"]}
