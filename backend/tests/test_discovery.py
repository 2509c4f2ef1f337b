"""Tests for the entity cache and the admin discovery API."""

from __future__ import annotations

import pytest

from lobbyha.services.entity_cache import EntityCache, EntityInfo, domain_label, search_entities


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def state_paths(fake_ha) -> list[str]:
    return [p for p in fake_ha.paths() if p == "/api/states"]


class TestEntityInfo:
    def test_from_state(self):
        info = EntityInfo.from_state({
            "entity_id": "light.kitchen",
            "state": "on",
            "attributes": {"friendly_name": "Kitchen Light", "area": "Kitchen"},
        })
        assert info.domain == "light"
        assert info.name == "Kitchen Light"
        assert info.area == "Kitchen"

    def test_name_falls_back_to_entity_id(self):
        assert EntityInfo.from_state({"entity_id": "sensor.x", "state": "1"}).name == "sensor.x"

    def test_domain_labels(self):
        assert domain_label("binary_sensor") == "Binary Sensors"
        assert domain_label("lawn_mower") == "Lawn Mower"

    def test_search(self):
        entities = [
            EntityInfo("light.kitchen", "light", "Kitchen Light", "on", area="Kitchen"),
            EntityInfo("switch.kettle", "switch", "Kettle", "off", area="Kitchen"),
            EntityInfo("light.porch", "light", "Porch", "off"),
        ]
        assert [e.entity_id for e in search_entities(entities, "kitchen")] == ["light.kitchen", "switch.kettle"]
        assert [e.entity_id for e in search_entities(entities, "kitchen", "light")] == ["light.kitchen"]
        assert len(search_entities(entities)) == 3


@pytest.mark.asyncio
async def test_cache_respects_ttl(configured, fake_ha):
    clock = FakeClock()
    cache = EntityCache(ttl=300, clock=clock)

    assert len(await cache.get_entities()) == 3
    clock.now += 299
    await cache.get_entities()
    assert len(state_paths(fake_ha)) == 1

    clock.now += 2
    await cache.get_entities()
    assert len(state_paths(fake_ha)) == 2


@pytest.mark.asyncio
async def test_force_refresh_and_invalidate(configured, fake_ha):
    cache = EntityCache(clock=FakeClock())
    await cache.get_entities()
    await cache.get_entities(force_refresh=True)
    assert len(state_paths(fake_ha)) == 2
    cache.invalidate()
    assert not cache.is_fresh()
    await cache.get_entities()
    assert len(state_paths(fake_ha)) == 3


class TestDiscoveryApi:
    def test_entities(self, client, configured, fake_ha, admin_headers):
        data = client.get("/api/discovery/entities", headers=admin_headers).json()
        assert data["total"] == 3
        labels = [g["label"] for g in data["domains"]]
        assert labels == sorted(labels)

    def test_discovery_ignores_allow_list(self, client, configured, fake_ha, admin_headers):
        client.post("/api/admin/config", headers=admin_headers, json={"allowedEntities": "light.kitchen"})
        data = client.get("/api/discovery/entities", headers=admin_headers).json()
        assert data["total"] == 3

    def test_domains(self, client, configured, fake_ha, admin_headers):
        data = client.get("/api/discovery/domains", headers=admin_headers).json()
        assert {d["domain"]: d["count"] for d in data["domains"]} == {"climate": 1, "light": 2}

    def test_search(self, client, configured, fake_ha, admin_headers):
        resp = client.get("/api/discovery/search", headers=admin_headers, params={"q": "bedroom"})
        assert [e["entity_id"] for e in resp.json()["entities"]] == ["light.bedroom"]

    def test_refresh(self, client, configured, fake_ha, admin_headers):
        client.get("/api/discovery/entities", headers=admin_headers)
        resp = client.post("/api/discovery/refresh", headers=admin_headers)
        assert resp.json()["refreshed"] is True
        assert len(state_paths(fake_ha)) == 2

    def test_not_configured(self, client, admin_headers):
        resp = client.get("/api/discovery/entities", headers=admin_headers)
        assert resp.status_code == 503
