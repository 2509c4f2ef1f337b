"""Guest-facing REST proxy to Home Assistant.

Every route here sits behind the guest PIN gate and sees only entities on
the allow-list. The HA token is attached by ``HAClient`` and never leaves
the server.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from .. import config
from ..guards import require_guest_pin
from ..services.ha_client import (
    HAClient,
    filter_payload,
    filter_states,
    path_entities,
    targeted_entities,
    uses_reference_targets,
)
from .admin import proxy_url

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["ha"], dependencies=[Depends(require_guest_pin)])


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Entity not found"}, status_code=404)


def _upstream_error(status_code: int) -> JSONResponse:
    return JSONResponse(
        {"error": f"Home Assistant returned {status_code}"}, status_code=status_code,
    )


@router.get("/config")
async def client_config(request: Request):
    """Connection info for guest clients: the proxy URL, never the token."""
    cfg = config.get_config()
    url = proxy_url(request)
    return {"haUrl": url, "hassUrl": url, "configured": bool(cfg.ha_token)}


@router.get("/states")
async def get_states():
    resp = await HAClient.get().request("GET", "/api/states")
    if not resp.is_success:
        return _upstream_error(resp.status_code)
    return filter_states(resp.json(), config.get_config().allowed_entities)


@router.get("/states/{entity_id}")
async def get_state(entity_id: str):
    if not config.get_config().is_entity_allowed(entity_id):
        return _not_found()
    resp = await HAClient.get().request("GET", f"/api/states/{entity_id}")
    if resp.status_code == 404:
        return _not_found()
    if not resp.is_success:
        return _upstream_error(resp.status_code)
    return resp.json()


@router.post("/services/{domain}/{service}")
async def call_service(domain: str, service: str, request: Request):
    cfg = config.get_config()
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    for entity_id in targeted_entities(body):
        if not cfg.is_entity_allowed(entity_id):
            logger.info("Blocked %s.%s for hidden entity %s", domain, service, entity_id)
            return _not_found()
    if cfg.allowed_entities and uses_reference_targets(body):
        logger.info("Blocked %s.%s targeting areas, devices or labels", domain, service)
        return _not_found()

    resp = await HAClient.get().request("POST", f"/api/services/{domain}/{service}", json=body)
    if not resp.is_success:
        return _upstream_error(resp.status_code)
    return filter_payload(resp.json(), cfg.allowed_entities)


@router.get("/{path:path}")
async def passthrough(path: str, request: Request):
    """Read-only passthrough for the remaining HA REST endpoints."""
    cfg = config.get_config()
    for entity_id in path_entities(path):
        if not cfg.is_entity_allowed(entity_id):
            return _not_found()

    resp = await HAClient.get().request(
        "GET", f"/api/{path}", params=list(request.query_params.multi_items()),
    )
    content_type = resp.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Unparseable JSON from HA for /api/%s", path)
        else:
            return JSONResponse(filter_payload(data, cfg.allowed_entities), status_code=resp.status_code)
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type=content_type or None,
    )
