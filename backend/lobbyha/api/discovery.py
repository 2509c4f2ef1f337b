from __future__ import annotations

from fastapi import APIRouter, Depends

from ..guards import require_admin
from ..services.entity_cache import EntityCache, domain_summary, group_by_domain, search_entities

router = APIRouter(
    prefix="/api/discovery",
    tags=["discovery"],
    dependencies=[Depends(require_admin)],
)


@router.get("/entities")
async def list_entities():
    entities = await EntityCache.get().get_entities()
    return {
        "entities": [e.to_dict() for e in entities],
        "domains": group_by_domain(entities),
        "total": len(entities),
    }


@router.get("/domains")
async def list_domains():
    entities = await EntityCache.get().get_entities()
    return {"domains": domain_summary(entities)}


@router.post("/refresh")
async def refresh_entities():
    entities = await EntityCache.get().get_entities(force_refresh=True)
    return {
        "entities": [e.to_dict() for e in entities],
        "domains": group_by_domain(entities),
        "total": len(entities),
        "refreshed": True,
    }


@router.get("/search")
async def search(q: str = "", domain: str | None = None):
    entities = await EntityCache.get().get_entities()
    found = search_entities(entities, q, domain)
    return {"entities": [e.to_dict() for e in found], "total": len(found)}
