"""Admin API: password login, sessions, server config and restart."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from .. import auth, config
from ..guards import admin_token, require_admin
from ..schemas import (
    ChangePasswordRequest,
    ConfigResponse,
    ConfigView,
    LoginRequest,
    LoginResponse,
    UpdateConfigRequest,
    UpdateConfigResponse,
)
from ..services.activity_log import CATEGORIES, ActivityLog
from ..services.entity_cache import EntityCache
from ..services.relay_manager import RelayManager
from ..services.restart import schedule_restart

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def proxy_url(request: Request) -> str:
    """Base URL clients should use for HA traffic: this server, not HA."""
    return str(request.base_url).rstrip("/")


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    al = ActivityLog.get()
    if not auth.check_admin_password(body.password):
        logger.warning("Admin login failed")
        al.record("admin", "Admin login failed", level="warn")
        return _error(401, "Invalid password")
    token = auth.create_session()
    al.record("admin", "Admin logged in")
    return LoginResponse(
        success=True,
        session_id=token,
        is_default_password=auth.is_default_password(),
    )


@router.get("/session")
async def session(request: Request):
    token = admin_token(request)
    if not auth.has_session(token):
        return {"valid": False, "authenticated": False}
    cfg = config.get_config()
    return {
        "valid": True,
        "authenticated": True,
        "hassUrl": proxy_url(request),
        "configured": bool(cfg.ha_token),
        "isDefaultPassword": auth.is_default_password(),
    }


@router.post("/logout")
async def logout(request: Request):
    token = admin_token(request)
    if token:
        auth.delete_session(token)
    return {"success": True}


@router.post("/change-password", dependencies=[Depends(require_admin)])
async def change_password(body: ChangePasswordRequest):
    if not body.current_password or not body.new_password:
        return _error(400, "Missing required fields")
    if not auth.check_admin_password(body.current_password):
        return _error(401, "Current password is incorrect")
    if len(body.new_password) < auth.MIN_PASSWORD_LENGTH:
        return _error(400, f"Password must be at least {auth.MIN_PASSWORD_LENGTH} characters")
    auth.set_admin_password(body.new_password)
    ActivityLog.get().record("admin", "Admin password changed")
    return {"success": True}


@router.post("/restart", dependencies=[Depends(require_admin)])
async def restart():
    strategy = schedule_restart()
    logger.info("Restart requested by admin (strategy=%s)", strategy.name)
    ActivityLog.get().record("admin", "Server restart requested", f"strategy={strategy.name}", level="warn")
    return {"success": True, "message": "Server restarting...", "strategy": strategy.name}


# --- Config ---


def _missing_fields(cfg: config.AppConfig) -> list[str]:
    missing = []
    if not cfg.ha_url or cfg.ha_url == config.DEFAULT_HA_URL:
        missing.append("HA_URL")
    if not cfg.ha_token:
        missing.append("HA_TOKEN")
    return missing


@router.get("/config", response_model=ConfigResponse, dependencies=[Depends(require_admin)])
async def get_config():
    cfg = config.get_config()
    return ConfigResponse(
        config=ConfigView(
            ha_url=cfg.ha_url,
            ha_token=config.TOKEN_MASK if cfg.ha_token else "",
            port=str(cfg.port),
            log_level=cfg.log_level,
            allowed_entities=", ".join(cfg.allowed_entities),
        ),
        missing=_missing_fields(cfg),
        locked_fields=config.locked_fields(),
    )


@router.post("/config", response_model=UpdateConfigResponse, dependencies=[Depends(require_admin)])
async def update_config(body: UpdateConfigRequest):
    before = config.get_config()

    updates: dict[str, Any] = {}
    if body.ha_url is not None:
        updates["ha_url"] = body.ha_url.strip().rstrip("/")
    if body.ha_token and body.ha_token != config.TOKEN_MASK:
        updates["ha_token"] = body.ha_token.strip()
    if body.port is not None and str(body.port).strip():
        try:
            port = int(body.port)
        except ValueError:
            return _error(400, "Port must be a number")
        if not 0 < port < 65536:
            return _error(400, "Port must be between 1 and 65535")
        updates["port"] = port
    if body.log_level is not None:
        updates["log_level"] = config.normalize_log_level(body.log_level)
    if body.allowed_entities is not None:
        updates["allowed_entities"] = config.parse_entity_list(body.allowed_entities)

    after = config.update_config(**updates)
    config.apply_log_level(after.log_level)

    if (after.ha_url, after.ha_token) != (before.ha_url, before.ha_token):
        EntityCache.get().invalidate()
    if (after.ha_url, after.ha_token, after.allowed_entities) != (
        before.ha_url, before.ha_token, before.allowed_entities,
    ):
        await RelayManager.get().close_all("Configuration changed")

    locked = config.locked_fields()
    restart_required = "port" in updates and "port" not in locked and updates["port"] != before.port
    ActivityLog.get().record("config", "Configuration saved", ", ".join(sorted(updates)) or None)
    return UpdateConfigResponse(
        message="Configuration saved.",
        locked_fields=locked,
        restart_required=restart_required,
    )


# --- Activity log ---


@router.get("/activity", dependencies=[Depends(require_admin)])
async def get_activity(category: str | None = None, limit: int | None = Query(None, ge=1)):
    if category is not None and category not in CATEGORIES:
        return _error(400, f"Unknown category. Expected one of: {', '.join(CATEGORIES)}")
    return {"entries": ActivityLog.get().get_entries(category, limit)}


@router.delete("/activity", status_code=204, dependencies=[Depends(require_admin)])
async def clear_activity():
    ActivityLog.get().clear()
