"""Route guards for admin and guest access.

Used as FastAPI dependencies. A failed check raises
``AuthenticationFailure`` so the request never reaches the handler.
"""

from __future__ import annotations

from fastapi import Request

from . import auth, config
from .errors import AuthenticationFailure

ADMIN_HEADER = "X-Admin-Session"
GUEST_HEADER = "X-Guest-Session"


def admin_token(request: Request) -> str | None:
    return request.headers.get(ADMIN_HEADER)


def guest_token(request: Request) -> str | None:
    return request.headers.get(GUEST_HEADER)


def guest_access_allowed(admin: str | None, guest: str | None) -> bool:
    """Decide guest-level access for a pair of presented tokens.

    The admin token is validated before it bypasses the PIN gate.
    """
    if not auth.is_guest_pin_enabled():
        return True
    if admin and auth.has_session(admin):
        return True
    return auth.has_guest_session(guest)


async def require_admin(request: Request) -> str:
    token = admin_token(request)
    if not token or not auth.has_session(token):
        raise AuthenticationFailure("Not authenticated")
    return token


async def require_guest_pin(request: Request) -> None:
    if not guest_access_allowed(admin_token(request), guest_token(request)):
        raise AuthenticationFailure("PIN required", pin_required=True)


async def require_setup_or_admin(request: Request) -> None:
    """Open during first-run setup, admin-only afterwards."""
    if config.needs_setup():
        return
    await require_admin(request)
