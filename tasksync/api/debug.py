"""Identity mapping and cache diagnostics"""

from fastapi import APIRouter, Depends

from tasksync.api.deps import get_services
from tasksync.models.sync_log import utcnow

router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/user-mapping")
async def get_user_mapping(services=Depends(get_services)):
    """Current ClickUp -> internal user mapping with diagnostics"""
    return await services.mapper.report()


@router.get("/map-to-internal/{external_id}")
async def map_to_internal(external_id: str, services=Depends(get_services)):
    internal_id = await services.mapper.resolve(external_id)
    return {"external_id": external_id, "internal_id": internal_id, "found": internal_id is not None}


@router.get("/map-to-external/{internal_id}")
async def map_to_external(internal_id: int, services=Depends(get_services)):
    external_id = await services.mapper.resolve_reverse(internal_id)
    return {"internal_id": internal_id, "external_id": external_id, "found": external_id is not None}


@router.post("/refresh-mapping")
async def refresh_mapping(services=Depends(get_services)):
    """Rebuild the mapping now instead of waiting for the TTL"""
    await services.mapper.refresh()
    return await services.mapper.report()


@router.post("/clear-cache")
def clear_cache(services=Depends(get_services)):
    """Drop every cached value"""
    keys = services.cache.keys()
    services.cache.clear()
    return {"message": "Caches cleared", "cleared": keys}


@router.post("/persist-backlinks")
async def persist_backlinks(services=Depends(get_services)):
    """Store heuristic matches as explicit backlinks on internal users"""
    return await services.mapper.persist_backlinks()


@router.get("/health")
def debug_health(services=Depends(get_services)):
    return {
        "status": "healthy",
        "timestamp": utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        "cached": {key: round(services.cache.age_seconds(key) or 0, 1) for key in services.cache.keys()},
        "webhook_queue": services.webhooks.stats(),
    }
