"""Tracks live WebSocket relays so config changes can tear them down."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .activity_log import ActivityLog

if TYPE_CHECKING:
    from ..ws.relay import HARelay

logger = logging.getLogger(__name__)

# "Service Restart": clients are expected to reconnect.
CLOSE_CONFIG_CHANGED = 1012


class RelayManager:
    """Singleton registry of active relays, keyed by relay id."""

    _instance: RelayManager | None = None

    def __init__(self) -> None:
        self.relays: dict[str, HARelay] = {}

    @classmethod
    def get(cls) -> RelayManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, relay: HARelay) -> None:
        self.relays[relay.relay_id] = relay
        logger.debug("Relay registered: %s (%d active)", relay.relay_id, len(self.relays))
        ActivityLog.get().record("relay", "Relay opened", f"id={relay.relay_id}")

    def unregister(self, relay: HARelay) -> None:
        if self.relays.pop(relay.relay_id, None) is not None:
            logger.debug("Relay unregistered: %s (%d active)", relay.relay_id, len(self.relays))
            ActivityLog.get().record(
                "relay",
                "Relay closed",
                f"id={relay.relay_id} dropped={relay.dropped_frames}",
            )

    def count(self) -> int:
        return len(self.relays)

    async def close_all(self, reason: str = "Configuration changed") -> int:
        """Close every live relay; clients reconnect with the new config."""
        relays = list(self.relays.values())
        for relay in relays:
            await relay.close(code=CLOSE_CONFIG_CHANGED, reason=reason)
        if relays:
            logger.info("Closed %d relay(s): %s", len(relays), reason)
        return len(relays)
