"""Guest PIN endpoints.

Public: status, verify-pin, session. Admin-only: PIN settings.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .. import auth
from ..guards import guest_token, require_admin
from ..schemas import (
    GuestPinModel,
    GuestSettingsResponse,
    GuestStatusResponse,
    UpdateGuestSettingsRequest,
    VerifyPinRequest,
    VerifyPinResponse,
)
from ..services.activity_log import ActivityLog

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/guest", tags=["guest"])


def _settings_response() -> GuestSettingsResponse:
    return GuestSettingsResponse(
        pin_enabled=auth.is_guest_pin_enabled(),
        pins=[GuestPinModel(pin=p.pin, permanent=p.permanent) for p in auth.read_guest_pins()],
    )


@router.get("/status", response_model=GuestStatusResponse)
async def guest_status(request: Request):
    pin_enabled = auth.is_guest_pin_enabled()
    return GuestStatusResponse(
        pin_enabled=pin_enabled,
        authenticated=not pin_enabled or auth.has_guest_session(guest_token(request)),
    )


@router.post("/verify-pin", response_model=VerifyPinResponse)
async def verify_pin(body: VerifyPinRequest):
    al = ActivityLog.get()
    if auth.is_guest_pin_enabled() and not body.pin:
        return JSONResponse({"success": False, "error": "PIN is required"}, status_code=400)

    match = auth.verify_guest_pin(body.pin or "")
    if match is None:
        logger.warning("Guest PIN verification failed")
        al.record("guest", "Guest PIN rejected", level="warn")
        return JSONResponse({"success": False, "error": "Invalid PIN"}, status_code=401)

    token = auth.create_guest_session(permanent=match.permanent)
    if match is not auth.OPEN_ACCESS:
        logger.info("Guest PIN verified (permanent=%s)", match.permanent)
        al.record("guest", "Guest PIN accepted", f"permanent={match.permanent}")
    return VerifyPinResponse(success=True, guest_session_id=token, permanent=match.permanent)


@router.get("/session")
async def guest_session(request: Request):
    return {"valid": auth.has_guest_session(guest_token(request))}


@router.get("/settings", response_model=GuestSettingsResponse, dependencies=[Depends(require_admin)])
async def get_guest_settings():
    return _settings_response()


@router.post("/settings", response_model=GuestSettingsResponse, dependencies=[Depends(require_admin)])
async def update_guest_settings(body: UpdateGuestSettingsRequest):
    if body.pin_enabled is not None:
        auth.set_guest_pin_enabled(body.pin_enabled)
    if body.pins is not None:
        auth.save_guest_pins(body.pins)

    response = _settings_response()
    logger.info(
        "Guest PIN settings updated: enabled=%s, pin count=%d",
        response.pin_enabled, len(response.pins),
    )
    ActivityLog.get().record("guest", "Guest PIN settings updated", f"pins={len(response.pins)}")
    return response
