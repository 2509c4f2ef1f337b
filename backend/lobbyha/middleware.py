"""Setup redirect middleware for LobbyHA."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from . import config

# Paths that stay reachable before setup is complete
_PASSTHROUGH_PREFIXES = ("/api/", "/assets/", "/health", "/setup")


class SetupRedirectMiddleware(BaseHTTPMiddleware):
    """Send page requests to ``/setup`` until an HA token has been saved."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if request.method != "GET" or any(path.startswith(p) for p in _PASSTHROUGH_PREFIXES):
            return await call_next(request)

        if config.needs_setup():
            return RedirectResponse("/setup", status_code=307)

        return await call_next(request)
