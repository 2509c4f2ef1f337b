"""Admin password, admin/guest session registries and guest PINs.

Sessions live in memory only, so a process restart logs everybody out.
All access happens on the event loop thread, so the registries need no
locking.
"""

from __future__ import annotations

import hashlib
import json
import secrets
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from . import store

GUEST_SESSION_TTL = 7 * 24 * 60 * 60  # 7 days in seconds

DEFAULT_PASSWORD = "admin"
MIN_PASSWORD_LENGTH = 4

_PBKDF2_ITERATIONS = 100_000
_PBKDF2_KEY_LENGTH = 64


# --- Session registries ---


@dataclass
class Session:
    token: str
    created_at: float


@dataclass
class GuestSession(Session):
    permanent: bool = False


def _new_token() -> str:
    # 256 bits; collisions are not checked for.
    return secrets.token_urlsafe(32)


class SessionRegistry:
    """Admin sessions: token → creation time. Never expire server-side."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def create_session(self) -> str:
        token = _new_token()
        self._sessions[token] = Session(token=token, created_at=self._clock())
        return token

    def has_session(self, token: str | None) -> bool:
        return bool(token) and token in self._sessions

    def delete_session(self, token: str) -> None:
        self._sessions.pop(token, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


class GuestSessionRegistry:
    """Guest sessions with a TTL that only applies to non-permanent entries."""

    def __init__(self, clock: Callable[[], float] = time.time, ttl: float = GUEST_SESSION_TTL) -> None:
        self._clock = clock
        self.ttl = ttl
        self._sessions: dict[str, GuestSession] = {}

    def _expired(self, session: GuestSession, now: float) -> bool:
        return not session.permanent and now - session.created_at > self.ttl

    def _evict_expired(self) -> None:
        now = self._clock()
        for token in [t for t, s in self._sessions.items() if self._expired(s, now)]:
            del self._sessions[token]

    def create_guest_session(self, permanent: bool = False) -> str:
        # Expired tokens that are never looked up again are dropped here.
        self._evict_expired()
        token = _new_token()
        self._sessions[token] = GuestSession(token=token, created_at=self._clock(), permanent=permanent)
        return token

    def get_guest_session(self, token: str | None) -> GuestSession | None:
        """Return the live session for *token*, evicting it if it has expired."""
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        if self._expired(session, self._clock()):
            self._sessions.pop(token, None)
            return None
        return session

    def has_guest_session(self, token: str | None) -> bool:
        return self.get_guest_session(token) is not None

    def delete_guest_session(self, token: str) -> None:
        self._sessions.pop(token, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


admin_sessions = SessionRegistry()
guest_sessions = GuestSessionRegistry()


def create_session() -> str:
    return admin_sessions.create_session()


def has_session(token: str | None) -> bool:
    return admin_sessions.has_session(token)


def delete_session(token: str) -> None:
    admin_sessions.delete_session(token)


def create_guest_session(permanent: bool = False) -> str:
    return guest_sessions.create_guest_session(permanent)


def has_guest_session(token: str | None) -> bool:
    return guest_sessions.has_guest_session(token)


def delete_guest_session(token: str) -> None:
    guest_sessions.delete_guest_session(token)


# --- Admin password ---


def hash_password(password: str, salt: str | None = None) -> tuple[str, str]:
    """PBKDF2-SHA512 hash of *password*. Returns ``(hash_hex, salt_hex)``."""
    salt = salt or secrets.token_hex(32)
    digest = hashlib.pbkdf2_hmac(
        "sha512", password.encode(), salt.encode(), _PBKDF2_ITERATIONS, _PBKDF2_KEY_LENGTH
    )
    return digest.hex(), salt


def verify_password(password: str, stored_hash: str, salt: str) -> bool:
    """Timing-safe check of *password* against a stored hash and salt."""
    if not isinstance(password, str):
        return False
    actual, _ = hash_password(password, salt)
    return secrets.compare_digest(actual, str(stored_hash))


def get_admin_password() -> dict[str, Any]:
    """Return the stored password record, creating the default one on first use."""
    record = store.get_admin_auth()
    if record is None:
        password_hash, salt = hash_password(DEFAULT_PASSWORD)
        record = store.save_admin_auth(password_hash, salt, is_default=True)
    return record


def check_admin_password(password: str) -> bool:
    record = get_admin_password()
    return verify_password(password, record["passwordHash"], record["salt"])


def is_default_password() -> bool:
    return bool(get_admin_password().get("isDefault"))


def set_admin_password(new_password: str) -> None:
    password_hash, salt = hash_password(new_password)
    store.save_admin_auth(password_hash, salt, is_default=False)


# --- Guest PINs ---


@dataclass(frozen=True)
class GuestPin:
    pin: str
    permanent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"pin": self.pin, "permanent": self.permanent}


# Match returned while PIN gating is disabled.
OPEN_ACCESS = GuestPin(pin="", permanent=False)


def is_guest_pin_enabled() -> bool:
    return store.get_setting("GUEST_PIN_ENABLED") == "true"


def set_guest_pin_enabled(enabled: bool) -> None:
    store.update_settings({"GUEST_PIN_ENABLED": "true" if enabled else "false"})


def normalize_pins(raw: Iterable[Any]) -> list[GuestPin]:
    """Accept plain strings (legacy) and ``{pin, permanent}`` records."""
    pins: list[GuestPin] = []
    for item in raw:
        if hasattr(item, "pin"):
            pin, permanent = item.pin, bool(getattr(item, "permanent", False))
        elif isinstance(item, dict):
            pin, permanent = item.get("pin", ""), bool(item.get("permanent", False))
        else:
            pin, permanent = item, False
        pin = str(pin if pin is not None else "").strip()
        if pin:
            pins.append(GuestPin(pin=pin, permanent=permanent))
    return pins


def read_guest_pins() -> list[GuestPin]:
    raw = store.get_setting("GUEST_PINS")
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return normalize_pins(parsed)


def save_guest_pins(pins: Iterable[Any]) -> list[GuestPin]:
    normalized = normalize_pins(pins)
    store.update_settings({"GUEST_PINS": json.dumps([p.to_dict() for p in normalized])})
    return normalized


def verify_guest_pin(candidate: str) -> GuestPin | None:
    """Return the matching PIN record, or None.

    The record rather than a bool is returned because the session's
    lifetime depends on which PIN was used.
    """
    if not is_guest_pin_enabled():
        return OPEN_ACCESS
    for pin in read_guest_pins():
        if pin.pin == candidate:
            return pin
    return None
