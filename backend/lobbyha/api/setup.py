"""First-run setup: validate HA credentials, save config, seed admin and PINs.

Anonymous access is only allowed until an HA token is configured, either saved
or from the environment.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .. import auth, config
from ..errors import UpstreamUnreachable
from ..guards import require_setup_or_admin
from ..schemas import ConnectionTestRequest, SetupRequest
from ..services.activity_log import ActivityLog
from ..services.entity_cache import EntityCache
from ..services.ha_client import HAClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/setup", tags=["setup"])


@router.get("/status")
async def setup_status():
    cfg = config.get_config()
    return {
        "needsSetup": config.needs_setup(),
        "config": {
            "HA_URL": cfg.ha_url,
            "HA_TOKEN": "(set)" if cfg.ha_token else "",
            "PORT": str(cfg.port),
            "LOG_LEVEL": cfg.log_level,
        },
    }


@router.post("/configure", dependencies=[Depends(require_setup_or_admin)])
async def configure(body: SetupRequest):
    ha_url = body.ha_url.strip().rstrip("/")
    ha_token = body.ha_token.strip()
    if not ha_url or not ha_token:
        return JSONResponse(
            {"success": False, "error": "HA URL and token are required"}, status_code=400,
        )

    logger.info("Setup: testing connection to %s", ha_url)
    try:
        message = await HAClient.get().check_connection(ha_url, ha_token)
    except UpstreamUnreachable as e:
        logger.error("Setup: connection failed: %s", e.message)
        return JSONResponse({"success": False, "error": e.message}, status_code=400)
    logger.info("Setup: HA connection successful (%s)", message)

    config.update_config(ha_url=ha_url, ha_token=ha_token)
    config.load_config()
    EntityCache.get().invalidate()

    if body.admin_password and len(body.admin_password) >= auth.MIN_PASSWORD_LENGTH:
        auth.set_admin_password(body.admin_password)
    if body.pin_enabled is not None:
        auth.set_guest_pin_enabled(body.pin_enabled)
    if body.pins is not None:
        saved = auth.save_guest_pins(body.pins)
        logger.info("Setup: saved %d guest PIN(s), enabled=%s", len(saved), body.pin_enabled)

    ActivityLog.get().record("config", "Initial setup completed", f"ha_url={ha_url}")
    return {"success": True, "message": "Setup complete! Redirecting..."}


@router.post("/test-connection", dependencies=[Depends(require_setup_or_admin)])
async def test_connection(body: ConnectionTestRequest):
    current = config.get_config()
    url = (body.ha_url or "").strip().rstrip("/") or current.ha_url
    token = (body.ha_token or "").strip()
    # The saved token is only ever sent to the saved URL.
    if not token and url == current.ha_url:
        token = current.ha_token
    if not url or not token:
        return JSONResponse({"success": False, "error": "URL and token required"}, status_code=400)
    try:
        message = await HAClient.get().check_connection(url, token)
    except UpstreamUnreachable as e:
        return {"success": False, "error": e.message}
    return {"success": True, "message": message}
