"""WebSocket relay between a dashboard client and Home Assistant.

Every inbound client socket gets its own upstream HA socket. The relay
authenticates upstream with the server-held token, then pumps frames both
ways:

- HA -> client: ``state_changed`` events for entities outside a non-empty
  allow-list are dropped.
- client -> HA: ``auth`` frames are swallowed, the relay owns upstream auth.

Frames that are not JSON are forwarded untouched in both directions.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

import websockets
from fastapi import APIRouter, WebSocket

from ..config import AppConfig, get_config
from ..guards import ADMIN_HEADER, GUEST_HEADER, guest_access_allowed
from ..services.activity_log import ActivityLog
from ..services.relay_manager import RelayManager

logger = logging.getLogger(__name__)
router = APIRouter()

HA_WEBSOCKET_PATH = "/api/websocket"

CLOSE_PIN_REQUIRED = 4401
CLOSE_UPSTREAM_ERROR = 1011


class RelayState(enum.Enum):
    CONNECTING_UPSTREAM = "connecting_upstream"
    AUTHENTICATING_UPSTREAM = "authenticating_upstream"
    RELAYING = "relaying"
    CLOSED = "closed"


@dataclass(frozen=True)
class KnownFrame:
    """A frame that parsed as a JSON object or array."""

    raw: str
    payload: dict[str, Any] | list[Any]


@dataclass(frozen=True)
class RawFrame:
    """Anything else: binary data, non-JSON text, bare JSON scalars."""

    raw: str | bytes


Frame = KnownFrame | RawFrame


def try_parse(data: str | bytes) -> Frame:
    if isinstance(data, bytes):
        return RawFrame(data)
    try:
        payload = json.loads(data)
    except ValueError:
        return RawFrame(data)
    if isinstance(payload, (dict, list)):
        return KnownFrame(data, payload)
    return RawFrame(data)


def ha_websocket_url(ha_url: str) -> str:
    """``http(s)://host`` -> ``ws(s)://host/api/websocket``."""
    base = ha_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + HA_WEBSOCKET_PATH


def is_hidden_event(message: Any, allowed: list[str]) -> bool:
    """True for a ``state_changed`` event about an entity outside *allowed*."""
    if not allowed or not isinstance(message, dict) or message.get("type") != "event":
        return False
    event = message.get("event")
    if not isinstance(event, dict) or event.get("event_type") != "state_changed":
        return False
    data = event.get("data")
    entity_id = data.get("entity_id") if isinstance(data, dict) else None
    return entity_id not in allowed


def is_auth_message(message: Any) -> bool:
    return isinstance(message, dict) and message.get("type") == "auth"


def _filter_frame(frame: Frame, drop: Callable[[Any], bool]) -> str | bytes | None:
    """Return what to forward for *frame*, or None to drop it.

    HA may coalesce several messages into one JSON array; those are filtered
    element-wise and re-serialised only when something was removed.
    """
    if isinstance(frame, RawFrame):
        return frame.raw
    payload = frame.payload
    if isinstance(payload, list):
        kept = [m for m in payload if not drop(m)]
        if len(kept) == len(payload):
            return frame.raw
        if not kept:
            return None
        return json.dumps(kept)
    return None if drop(payload) else frame.raw


def filter_upstream_frame(frame: Frame, allowed: list[str]) -> str | bytes | None:
    return _filter_frame(frame, lambda m: is_hidden_event(m, allowed))


def filter_client_frame(frame: Frame) -> str | bytes | None:
    return _filter_frame(frame, is_auth_message)


class HARelay:
    """Two-sided proxy for one client connection.

    *cfg* is a snapshot taken when the client connected; a config change
    closes the relay through ``RelayManager`` instead of mutating it.
    """

    def __init__(
        self,
        client: WebSocket,
        cfg: AppConfig,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self.relay_id = uuid.uuid4().hex[:8]
        self.client = client
        self.config = cfg
        self.state = RelayState.CONNECTING_UPSTREAM
        self.dropped_frames = 0
        self._connect = connect or websockets.connect
        self._upstream: Any = None

    @property
    def upstream_url(self) -> str:
        return ha_websocket_url(self.config.ha_url)

    async def run(self) -> None:
        url = self.upstream_url
        logger.debug("Relay %s: connecting to %s", self.relay_id, url)
        try:
            self._upstream = await self._connect(
                url,
                max_size=None,
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            logger.warning("Relay %s: upstream connect failed: %s", self.relay_id, e)
            ActivityLog.get().record("relay", "Home Assistant WebSocket unreachable", str(e), level="error")
            await self.close(code=CLOSE_UPSTREAM_ERROR, reason="Home Assistant unreachable")
            return

        try:
            await self._authenticate()
            await self._pump()
        finally:
            await self.close()

    async def _authenticate(self) -> None:
        self.state = RelayState.AUTHENTICATING_UPSTREAM
        await self._upstream.send(json.dumps({
            "type": "auth",
            "access_token": self.config.ha_token,
        }))
        logger.debug("Relay %s: sent upstream auth", self.relay_id)

    async def _pump(self) -> None:
        done, pending = await asyncio.wait(
            [
                asyncio.create_task(self._upstream_to_client()),
                asyncio.create_task(self._client_to_upstream()),
            ],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.debug("Relay %s: pump ended with %r", self.relay_id, exc)

    async def _upstream_to_client(self) -> None:
        allowed = self.config.allowed_entities
        try:
            async for message in self._upstream:
                if self.state is RelayState.AUTHENTICATING_UPSTREAM:
                    self.state = RelayState.RELAYING
                out = filter_upstream_frame(try_parse(message), allowed)
                if out is None:
                    self.dropped_frames += 1
                    continue
                if isinstance(out, bytes):
                    await self.client.send_bytes(out)
                else:
                    await self.client.send_text(out)
        except websockets.ConnectionClosed as e:
            logger.debug("Relay %s: upstream closed: %s", self.relay_id, e)

    async def _client_to_upstream(self) -> None:
        while True:
            message = await self.client.receive()
            if message.get("type") == "websocket.disconnect":
                logger.debug("Relay %s: client disconnected", self.relay_id)
                return
            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            out = filter_client_frame(try_parse(data))
            if out is None:
                logger.debug("Relay %s: swallowed client auth frame", self.relay_id)
                continue
            await self._upstream.send(out)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close both sides. Safe to call more than once."""
        if self.state is RelayState.CLOSED:
            return
        self.state = RelayState.CLOSED
        if self._upstream is not None:
            with contextlib.suppress(Exception):
                await self._upstream.close()
        with contextlib.suppress(Exception):
            await self.client.close(code=code, reason=reason)


def _session_tokens(websocket: WebSocket) -> tuple[str | None, str | None]:
    # Browsers cannot set headers on WebSocket upgrades, so query params work too.
    admin = websocket.headers.get(ADMIN_HEADER) or websocket.query_params.get("adminSession")
    guest = websocket.headers.get(GUEST_HEADER) or websocket.query_params.get("guestSession")
    return admin, guest


@router.websocket("/{path:path}")
async def relay_ws(websocket: WebSocket, path: str = ""):
    await websocket.accept()

    admin, guest = _session_tokens(websocket)
    if not guest_access_allowed(admin, guest):
        ActivityLog.get().record("relay", "WebSocket refused: PIN required", f"path=/{path}", level="warn")
        await websocket.send_text(json.dumps({
            "type": "auth_invalid",
            "message": "PIN required",
            "pinRequired": True,
        }))
        await websocket.close(code=CLOSE_PIN_REQUIRED)
        return

    cfg = get_config()
    if not cfg.ha_url or not cfg.ha_token:
        await websocket.close(code=CLOSE_UPSTREAM_ERROR, reason="Home Assistant is not configured")
        return

    relay = HARelay(websocket, replace(cfg, allowed_entities=list(cfg.allowed_entities)))
    rm = RelayManager.get()
    rm.register(relay)
    try:
        await relay.run()
    except Exception as e:
        logger.error("Relay %s error: %s", relay.relay_id, e)
    finally:
        rm.unregister(relay)
        await relay.close()
