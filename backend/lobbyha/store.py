"""Simple JSON file store.

Layout:
    data/settings.json      flat key/value table (string values)
    data/admin_auth.json    admin password hash, salt and default flag
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .settings import settings

logger = logging.getLogger(__name__)


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text())


def _write_json(path: Path, data: Any) -> None:
    _ensure_dir(path.parent)
    path.write_text(json.dumps(data, indent=2))


# --- Settings -------------------------------------------------------------


def settings_path() -> Path:
    return settings.data_path / "settings.json"


def get_settings() -> dict[str, str]:
    p = settings_path()
    if not p.exists():
        return {}
    return {str(k): str(v) for k, v in _read_json(p).items()}


def get_setting(key: str) -> str | None:
    return get_settings().get(key)


def update_settings(data: dict[str, str]) -> dict[str, str]:
    current = get_settings()
    for key, value in data.items():
        if value is not None:
            current[key] = str(value)
    _write_json(settings_path(), current)
    return current


def has_settings() -> bool:
    return bool(get_settings())


# --- Admin auth -----------------------------------------------------------


def admin_auth_path() -> Path:
    return settings.data_path / "admin_auth.json"


def get_admin_auth() -> dict[str, Any] | None:
    p = admin_auth_path()
    if not p.exists():
        return None
    return _read_json(p)


def save_admin_auth(password_hash: str, salt: str, is_default: bool) -> dict[str, Any]:
    record = {"passwordHash": password_hash, "salt": salt, "isDefault": is_default}
    _write_json(admin_auth_path(), record)
    return record


# --- Legacy file config -----------------------------------------------------

_LEGACY_KEYS = ("HA_URL", "HA_TOKEN", "PORT", "LOG_LEVEL", "ALLOWED_ENTITIES")


def _load_legacy_source(data_dir: Path) -> dict[str, Any]:
    yaml_path = data_dir / "config.yaml"
    if yaml_path.exists():
        try:
            source = yaml.safe_load(yaml_path.read_text())
        except yaml.YAMLError as e:
            logger.warning("Could not parse %s: %s", yaml_path, e)
        else:
            if isinstance(source, dict) and source:
                return source

    json_path = data_dir / "options.json"
    if json_path.exists():
        try:
            source = _read_json(json_path)
        except json.JSONDecodeError as e:
            logger.warning("Could not parse %s: %s", json_path, e)
        else:
            if isinstance(source, dict):
                return source
    return {}


def migrate_file_config() -> bool:
    """Import a legacy ``config.yaml``/``options.json`` once.

    Only runs while the settings table is still empty. Returns True when
    anything was imported.
    """
    if has_settings():
        return False

    source = _load_legacy_source(settings.data_path)
    entries: dict[str, str] = {}
    for key in _LEGACY_KEYS:
        value = source.get(key) or source.get(key.lower())
        if value in (None, ""):
            continue
        if isinstance(value, list):
            value = ",".join(str(v) for v in value)
        entries[key] = str(value)

    if not entries:
        return False
    update_settings(entries)
    return True
