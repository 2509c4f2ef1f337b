"""REST client for the upstream Home Assistant instance.

The server-held long-lived token is attached here and nowhere else on the
HTTP side; guests never see it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

import httpx

from ..config import get_config
from ..errors import ConfigurationIncomplete, UpstreamUnreachable

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0
READ_TIMEOUT = 55.0

ENTITY_ID_RE = re.compile(r"^[a-z][a-z0-9_]*\.[a-z0-9_]+$")
# Service call targets that HA expands to entities on its side.
REFERENCE_TARGETS = ("area_id", "device_id", "floor_id", "label_id")


def filter_states(states: Iterable[dict[str, Any]], allowed: list[str]) -> list[dict[str, Any]]:
    """Keep only entities in *allowed*; an empty allow-list keeps everything."""
    states = list(states)
    if not allowed:
        return states
    allowed_set = set(allowed)
    return [s for s in states if isinstance(s, dict) and s.get("entity_id") in allowed_set]


def filter_payload(payload: Any, allowed: list[str]) -> Any:
    """Apply the allow-list to arbitrary HA JSON responses.

    Lists of state objects are filtered, history-style lists of lists are
    filtered per inner list (empty series are dropped). Anything else is
    returned unchanged.
    """
    if not allowed or not isinstance(payload, list):
        return payload
    if payload and all(isinstance(item, list) for item in payload):
        series = [filter_states(inner, allowed) for inner in payload]
        return [s for s in series if s]
    if any(isinstance(item, dict) and "entity_id" in item for item in payload):
        return filter_states(payload, allowed)
    return payload


def targeted_entities(body: Any) -> list[str]:
    """Entity ids a service call body targets (``entity_id`` or ``target.entity_id``)."""
    if not isinstance(body, dict):
        return []
    found: list[str] = []
    for source in (body, body.get("target") if isinstance(body.get("target"), dict) else {}):
        value = source.get("entity_id")
        if isinstance(value, str):
            found.extend(v.strip() for v in value.split(",") if v.strip())
        elif isinstance(value, list):
            found.extend(str(v) for v in value)
    return found


def uses_reference_targets(body: Any) -> bool:
    """True if a service call targets areas, devices, floors or labels."""
    if not isinstance(body, dict):
        return False
    target = body.get("target") if isinstance(body.get("target"), dict) else {}
    return any(source.get(key) for source in (body, target) for key in REFERENCE_TARGETS)


def path_entities(path: str) -> list[str]:
    """Path segments shaped like an entity id, e.g. ``camera.bedroom`` in
    ``camera_proxy/camera.bedroom``."""
    return [segment for segment in path.split("/") if ENTITY_ID_RE.match(segment)]


class HAClient:
    """Singleton wrapper around ``httpx.AsyncClient``.

    A fresh client is opened per request so URL/token changes made through
    the admin API take effect immediately.
    """

    _instance: HAClient | None = None

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    @classmethod
    def get(cls) -> HAClient:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _client(self, base_url: str, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(READ_TIMEOUT, connect=CONNECT_TIMEOUT),
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Any = None,
    ) -> httpx.Response:
        cfg = get_config()
        if not cfg.ha_url or not cfg.ha_token:
            raise ConfigurationIncomplete()
        async with self._client(cfg.ha_url, cfg.ha_token) as client:
            try:
                resp = await client.request(method, path, json=json, params=params)
            except httpx.RequestError as e:
                logger.error("HA request %s %s failed: %s", method, path, e)
                raise UpstreamUnreachable(f"Cannot reach Home Assistant: {type(e).__name__}") from e
        logger.debug("HA %s %s -> %d", method, path, resp.status_code)
        return resp

    async def get_states(self) -> list[dict[str, Any]]:
        resp = await self.request("GET", "/api/states")
        if resp.status_code != 200:
            raise UpstreamUnreachable(f"Home Assistant returned {resp.status_code}")
        return resp.json()

    async def check_connection(self, url: str, token: str) -> str:
        """Probe ``/api/`` with explicit credentials. Returns HA's message."""
        async with self._client(url.rstrip("/"), token) as client:
            try:
                resp = await client.get("/api/")
            except httpx.RequestError as e:
                raise UpstreamUnreachable(
                    f"Cannot connect to {url}. Check the URL and ensure HA is running."
                ) from e
        if resp.status_code != 200:
            raise UpstreamUnreachable(
                f"Home Assistant returned {resp.status_code}. Check URL and token."
            )
        try:
            data = resp.json()
        except ValueError:
            return "Connected!"
        return data.get("message", "Connected!") if isinstance(data, dict) else "Connected!"
