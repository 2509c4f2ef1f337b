"""Effective application configuration.

Values are resolved from three layers: the persisted settings table, the
process environment and built-in defaults, in that order of precedence.
``port`` has one extra layer on top: an explicit ``--port`` CLI argument.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from . import store
from .settings import ServerSettings, settings

logger = logging.getLogger(__name__)

DEFAULT_HA_URL = "http://localhost:8123"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

TOKEN_MASK = "••••••••"


@dataclass
class AppConfig:
    ha_url: str = DEFAULT_HA_URL
    ha_token: str = ""
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL
    allowed_entities: list[str] = field(default_factory=list)

    def is_entity_allowed(self, entity_id: str | None) -> bool:
        """Empty allow-list means everything is allowed."""
        if not self.allowed_entities:
            return True
        return entity_id in self.allowed_entities


_current: AppConfig | None = None
_cli_port: int | None = None


def normalize_log_level(level: str | None) -> str:
    if not level:
        return DEFAULT_LOG_LEVEL
    name = str(level).strip().upper()
    if name == "WARN":
        name = "WARNING"
    return name if name in LOG_LEVELS else DEFAULT_LOG_LEVEL


def apply_log_level(level: str) -> None:
    logging.getLogger("lobbyha").setLevel(normalize_log_level(level))


def parse_entity_list(raw: str | list[str] | None) -> list[str]:
    """Split a comma-joined allow-list, dropping blanks and duplicates."""
    if not raw:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    result: list[str] = []
    for item in items:
        entity_id = str(item).strip()
        if entity_id and entity_id not in result:
            result.append(entity_id)
    return result


def _parse_port(raw: str | int | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        port = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid port value %r", raw)
        return None
    if not 0 < port < 65536:
        logger.warning("Ignoring out-of-range port %d", port)
        return None
    return port


def resolve_config(
    persisted: Mapping[str, str],
    environment: ServerSettings,
    cli_port: int | None = None,
) -> AppConfig:
    """Merge the configuration layers into one ``AppConfig``.

    persisted > environment > default for every field, and for ``port``
    the CLI argument outranks all three.
    """
    port = (
        cli_port
        or _parse_port(persisted.get("PORT"))
        or _parse_port(environment.port)
        or DEFAULT_PORT
    )
    allowed_raw = persisted.get("ALLOWED_ENTITIES") or environment.allowed_entities
    return AppConfig(
        ha_url=(persisted.get("HA_URL") or environment.ha_url or DEFAULT_HA_URL).rstrip("/"),
        ha_token=persisted.get("HA_TOKEN") or environment.ha_token or "",
        port=port,
        log_level=normalize_log_level(persisted.get("LOG_LEVEL") or environment.log_level),
        allowed_entities=parse_entity_list(allowed_raw),
    )


def set_cli_port(port: int | None) -> None:
    global _cli_port
    _cli_port = port


def locked_fields() -> dict[str, str]:
    """Fields whose saved value is shadowed by a higher-precedence source."""
    locked: dict[str, str] = {}
    if _cli_port:
        locked["port"] = "cli"
    return locked


def load_config() -> AppConfig:
    """Re-read persisted settings and rebuild the process-wide config."""
    global _current
    _current = resolve_config(store.get_settings(), settings, _cli_port)
    return _current


def get_config() -> AppConfig:
    if _current is None:
        return load_config()
    return _current


def save_config(cfg: AppConfig) -> AppConfig:
    global _current
    entries = {
        "HA_URL": cfg.ha_url,
        "HA_TOKEN": cfg.ha_token,
        "PORT": str(cfg.port),
        "LOG_LEVEL": cfg.log_level,
        "ALLOWED_ENTITIES": ",".join(cfg.allowed_entities),
    }
    store.update_settings(entries)
    # The saved port may be shadowed by the CLI; keep the effective one live.
    _current = replace(cfg, port=_cli_port or cfg.port)
    return _current


def update_config(**changes: Any) -> AppConfig:
    current = get_config()
    merged = replace(current, **changes)
    if "port" not in changes:
        # Do not write a CLI override back as the persisted port.
        merged.port = resolve_config(store.get_settings(), settings).port
    return save_config(merged)


def needs_setup() -> bool:
    """True until an HA token is available from any layer (saved or environment)."""
    return not get_config().ha_token


def reset() -> None:
    """Forget the cached config and CLI override (used by tests)."""
    global _current, _cli_port
    _current = None
    _cli_port = None
