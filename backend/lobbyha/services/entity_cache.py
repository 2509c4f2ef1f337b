"""Cached entity discovery for the admin UI.

Not authoritative: everything here can be re-derived from HA's ``/api/states``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from .ha_client import HAClient

logger = logging.getLogger(__name__)

CACHE_TTL = 5 * 60  # seconds

DOMAIN_LABELS: dict[str, str] = {
    "light": "Lights",
    "switch": "Switches",
    "climate": "Climate",
    "sensor": "Sensors",
    "binary_sensor": "Binary Sensors",
    "lock": "Locks",
    "cover": "Covers",
    "media_player": "Media Players",
    "camera": "Cameras",
    "fan": "Fans",
    "vacuum": "Vacuums",
    "automation": "Automations",
    "scene": "Scenes",
    "script": "Scripts",
    "input_boolean": "Input Booleans",
    "input_number": "Input Numbers",
    "input_select": "Input Selects",
    "input_text": "Input Text",
    "weather": "Weather",
    "person": "People",
    "zone": "Zones",
    "device_tracker": "Device Trackers",
    "group": "Groups",
    "alarm_control_panel": "Alarm Panels",
    "water_heater": "Water Heaters",
    "humidifier": "Humidifiers",
}


def domain_label(domain: str) -> str:
    return DOMAIN_LABELS.get(domain) or domain.replace("_", " ").title()


@dataclass
class EntityInfo:
    entity_id: str
    domain: str
    name: str
    state: str
    area: str | None = None
    device_class: str | None = None

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> EntityInfo:
        entity_id = state["entity_id"]
        attributes = state.get("attributes") or {}
        return cls(
            entity_id=entity_id,
            domain=entity_id.split(".", 1)[0],
            name=attributes.get("friendly_name") or entity_id,
            state=str(state.get("state", "")),
            area=attributes.get("area"),
            device_class=attributes.get("device_class"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def group_by_domain(entities: list[EntityInfo]) -> list[dict[str, Any]]:
    groups: dict[str, list[EntityInfo]] = {}
    for e in entities:
        groups.setdefault(e.domain, []).append(e)
    result = [
        {
            "domain": domain,
            "label": domain_label(domain),
            "entities": [e.to_dict() for e in sorted(ents, key=lambda e: e.name)],
        }
        for domain, ents in groups.items()
    ]
    return sorted(result, key=lambda g: g["label"])


def domain_summary(entities: list[EntityInfo]) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for e in entities:
        counts[e.domain] = counts.get(e.domain, 0) + 1
    return [
        {"domain": d, "label": domain_label(d), "count": counts[d]}
        for d in sorted(counts)
    ]


def search_entities(entities: list[EntityInfo], query: str = "", domain: str | None = None) -> list[EntityInfo]:
    query = query.lower()
    result = entities
    if domain:
        result = [e for e in result if e.domain == domain]
    if query:
        result = [
            e for e in result
            if query in e.entity_id.lower()
            or query in e.name.lower()
            or (e.area is not None and query in e.area.lower())
        ]
    return result


class EntityCache:
    """Singleton TTL cache over HA's full state list."""

    _instance: EntityCache | None = None

    def __init__(self, ttl: float = CACHE_TTL, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self.entities: list[EntityInfo] = []
        self.fetched_at: float = 0.0

    @classmethod
    def get(cls) -> EntityCache:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def is_fresh(self) -> bool:
        return bool(self.entities) and self._clock() - self.fetched_at < self.ttl

    def invalidate(self) -> None:
        self.entities = []
        self.fetched_at = 0.0

    async def get_entities(self, force_refresh: bool = False) -> list[EntityInfo]:
        if not force_refresh and self.is_fresh():
            return self.entities
        states = await HAClient.get().get_states()
        self.entities = [EntityInfo.from_state(s) for s in states if isinstance(s, dict) and "entity_id" in s]
        self.fetched_at = self._clock()
        logger.info("Discovery: cached %d entities", len(self.entities))
        return self.entities
