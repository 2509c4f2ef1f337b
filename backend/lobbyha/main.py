from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config, store
from .api.admin import router as admin_router
from .api.discovery import router as discovery_router
from .api.guest import router as guest_router
from .api.ha_proxy import router as ha_proxy_router
from .api.setup import router as setup_router
from .errors import LobbyError
from .guards import ADMIN_HEADER, GUEST_HEADER
from .middleware import SetupRedirectMiddleware
from .services.relay_manager import RelayManager
from .settings import settings
from .ws.relay import router as relay_ws_router

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _started_at
    _started_at = time.monotonic()

    store._ensure_dir(settings.data_path)
    if store.migrate_file_config():
        logger.info("Imported legacy file config into %s", store.settings_path())

    cfg = config.load_config()
    config.apply_log_level(cfg.log_level)

    logger.info("LobbyHA started (data dir %s)", settings.data_path)
    logger.info("Home Assistant: %s", cfg.ha_url)
    if config.needs_setup():
        logger.warning("No Home Assistant token configured, setup required")
    if cfg.allowed_entities:
        logger.info("Entity allow-list: %d entities", len(cfg.allowed_entities))
    yield
    closed = await RelayManager.get().close_all("Server shutting down")
    logger.info("LobbyHA shutting down (%d relay(s) closed)", closed)


app = FastAPI(title="LobbyHA", version="0.1.0", lifespan=lifespan)

_static_dir = Path(settings.static_dir) if settings.static_dir else None

# Middleware executes in reverse order of addition (last added runs first).
# The setup redirect only matters when there is a frontend to redirect to.
if _static_dir and _static_dir.is_dir():
    app.add_middleware(SetupRedirectMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "Authorization", ADMIN_HEADER, GUEST_HEADER],
)


@app.exception_handler(LobbyError)
async def lobby_error_handler(request: Request, exc: LobbyError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Register routers; the HA proxy has a catch-all and must come last.
app.include_router(admin_router)
app.include_router(guest_router)
app.include_router(setup_router)
app.include_router(discovery_router)
app.include_router(ha_proxy_router)
app.include_router(relay_ws_router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "needsSetup": config.needs_setup(),
        "uptime": round(time.monotonic() - _started_at, 1),
    }


# Serve frontend static files if STATIC_DIR is set and exists.
# Must be mounted after all API/WS routes to avoid shadowing them.
if _static_dir and _static_dir.is_dir():
    from fastapi.staticfiles import StaticFiles

    class SPAStaticFiles(StaticFiles):
        """Serve index.html for any path not found (SPA client-side routing)."""

        async def get_response(self, path: str, scope):
            try:
                return await super().get_response(path, scope)
            except Exception:
                return await super().get_response("index.html", scope)

    app.mount("/", SPAStaticFiles(directory=str(_static_dir), html=True), name="spa")
