"""Tests for the allow-listed Home Assistant REST proxy."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import HA_TOKEN, allow_entities

from lobbyha.services.ha_client import (
    HAClient,
    filter_payload,
    filter_states,
    path_entities,
    targeted_entities,
    uses_reference_targets,
)


# ── Filtering helpers ──────────────────────────────────────────


class TestFilterHelpers:
    def test_empty_allow_list_keeps_everything(self):
        states = [{"entity_id": "light.a"}, {"entity_id": "light.b"}]
        assert filter_states(states, []) == states

    def test_filter_states(self):
        states = [{"entity_id": "light.a"}, {"entity_id": "light.b"}]
        assert filter_states(states, ["light.b"]) == [{"entity_id": "light.b"}]

    def test_filter_history_series(self):
        history = [[{"entity_id": "light.a"}], [{"entity_id": "light.b"}, {"entity_id": "light.b"}]]
        assert filter_payload(history, ["light.b"]) == [[{"entity_id": "light.b"}, {"entity_id": "light.b"}]]

    def test_non_entity_payload_untouched(self):
        assert filter_payload({"version": "2024.1"}, ["light.a"]) == {"version": "2024.1"}
        assert filter_payload(["a", "b"], ["light.a"]) == ["a", "b"]

    @pytest.mark.parametrize("body,expected", [
        ({"entity_id": "light.a"}, ["light.a"]),
        ({"entity_id": "light.a, light.b"}, ["light.a", "light.b"]),
        ({"entity_id": ["light.a", "light.b"]}, ["light.a", "light.b"]),
        ({"target": {"entity_id": "light.c"}}, ["light.c"]),
        ({"brightness": 255}, []),
        ([], []),
    ])
    def test_targeted_entities(self, body, expected):
        assert targeted_entities(body) == expected

    @pytest.mark.parametrize("body,expected", [
        ({"area_id": "bedroom"}, True),
        ({"target": {"device_id": ["abc123"]}}, True),
        ({"target": {"label_id": "guest"}}, True),
        ({"target": {"floor_id": "upstairs", "entity_id": "light.a"}}, True),
        ({"target": {"area_id": []}}, False),
        ({"entity_id": "light.a"}, False),
        ("area_id", False),
    ])
    def test_uses_reference_targets(self, body, expected):
        assert uses_reference_targets(body) is expected

    def test_path_entities(self):
        assert path_entities("camera_proxy/camera.bedroom") == ["camera.bedroom"]
        assert path_entities("history/period/2024-01-01T00:00:00+00:00") == []
        assert path_entities("error_log") == []


# ── Proxy routes ───────────────────────────────────────────────


class TestStates:
    def test_allow_list_filters_states(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.get("/api/states")
        assert resp.status_code == 200
        assert [s["entity_id"] for s in resp.json()] == ["light.kitchen"]

    def test_no_allow_list_returns_everything(self, client, configured, fake_ha):
        resp = client.get("/api/states")
        assert len(resp.json()) == 3

    def test_token_is_attached_upstream_only(self, client, configured, fake_ha):
        resp = client.get("/api/states")
        assert fake_ha.requests[0].headers["Authorization"] == f"Bearer {HA_TOKEN}"
        assert HA_TOKEN not in resp.text

    def test_hidden_entity_is_not_found(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.get("/api/states/light.bedroom")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Entity not found"}
        # Never asked upstream
        assert fake_ha.requests == []

    def test_visible_entity(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.get("/api/states/light.kitchen")
        assert resp.status_code == 200
        assert resp.json()["state"] == "on"

    def test_unknown_entity_upstream(self, client, configured, fake_ha):
        assert client.get("/api/states/light.garage").status_code == 404

    def test_upstream_error_status_is_passed_on(self, client, configured, fake_ha):
        fake_ha.fail_with = 500
        resp = client.get("/api/states")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Home Assistant returned 500"}


class TestServices:
    def test_call_on_hidden_entity_blocked(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.post("/api/services/light/turn_on", json={"entity_id": "light.bedroom"})
        assert resp.status_code == 404
        assert fake_ha.requests == []

    def test_call_with_mixed_targets_blocked(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.post("/api/services/light/turn_on", json={
            "target": {"entity_id": ["light.kitchen", "light.bedroom"]},
        })
        assert resp.status_code == 404

    def test_call_on_visible_entity_forwarded(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.post("/api/services/light/turn_off", json={"entity_id": "light.kitchen"})
        assert resp.status_code == 200
        assert [s["entity_id"] for s in resp.json()] == ["light.kitchen"]
        forwarded = fake_ha.requests[0]
        assert forwarded.method == "POST"
        assert forwarded.url.path == "/api/services/light/turn_off"
        assert json.loads(forwarded.content) == {"entity_id": "light.kitchen"}

    def test_malformed_body(self, client, configured, fake_ha):
        resp = client.post(
            "/api/services/light/turn_on",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert fake_ha.requests == []

    def test_call_without_body(self, client, configured, fake_ha):
        resp = client.post("/api/services/homeassistant/check_config")
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.parametrize("body", [
        {"target": {"area_id": "bedroom"}},
        {"device_id": "bedroom-lamp"},
        {"target": {"label_id": ["guest"]}, "entity_id": "light.kitchen"},
    ])
    def test_area_device_label_targets_blocked(self, client, configured, fake_ha, body):
        allow_entities("light.kitchen")
        resp = client.post("/api/services/light/turn_on", json=body)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Entity not found"}
        assert fake_ha.requests == []

    def test_area_target_forwarded_without_allow_list(self, client, configured, fake_ha):
        resp = client.post("/api/services/light/turn_on", json={"target": {"area_id": "bedroom"}})
        assert resp.status_code == 200
        assert fake_ha.paths() == ["/api/services/light/turn_on"]


class TestPassthrough:
    def test_history_is_filtered(self, client, configured, fake_ha):
        allow_entities("climate.lobby")
        resp = client.get("/api/history/period?filter_entity_id=climate.lobby")
        assert resp.status_code == 200
        assert resp.json() == [[{
            "entity_id": "climate.lobby",
            "state": "heat",
            "attributes": {"friendly_name": "Lobby Thermostat", "device_class": "temperature"},
        }]]
        assert fake_ha.requests[0].url.params["filter_entity_id"] == "climate.lobby"

    def test_non_json_passthrough(self, client, configured, fake_ha):
        resp = client.get("/api/error_log")
        assert resp.status_code == 200
        assert resp.text == "all good\n"
        assert resp.headers["content-type"].startswith("text/plain")

    def test_upstream_status_preserved(self, client, configured, fake_ha):
        assert client.get("/api/does/not/exist").status_code == 404

    def test_hidden_entity_in_path_not_forwarded(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.get("/api/camera_proxy/camera.bedroom")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Entity not found"}
        assert fake_ha.requests == []

    def test_allowed_entity_in_path_forwarded(self, client, configured, fake_ha):
        allow_entities("camera.lobby")
        resp = client.get("/api/camera_proxy/camera.lobby?token=abc")
        assert resp.status_code == 200
        assert resp.content == b"\xff\xd8jpeg"
        assert fake_ha.paths() == ["/api/camera_proxy/camera.lobby"]

    def test_entity_path_open_without_allow_list(self, client, configured, fake_ha):
        assert client.get("/api/camera_proxy/camera.bedroom").status_code == 200

    def test_malformed_json_passed_through(self, client, configured, fake_ha):
        allow_entities("light.kitchen")
        resp = client.get("/api/broken")
        assert resp.status_code == 200
        assert resp.content == b"{truncated"
        assert resp.headers["content-type"].startswith("application/json")


class TestErrors:
    def test_not_configured(self, client, fake_ha):
        resp = client.get("/api/states")
        assert resp.status_code == 503
        data = resp.json()
        assert data["needsSetup"] is True
        assert data["success"] is False

    def test_upstream_unreachable(self, client, configured):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        HAClient._instance = HAClient(transport=httpx.MockTransport(refuse))
        resp = client.get("/api/states")
        assert resp.status_code == 502
        assert "Cannot reach Home Assistant" in resp.json()["error"]


class TestClientConfig:
    def test_config_points_at_proxy(self, client, configured):
        data = client.get("/api/config").json()
        assert data == {"haUrl": "http://testserver", "hassUrl": "http://testserver", "configured": True}
        assert HA_TOKEN not in json.dumps(data)
