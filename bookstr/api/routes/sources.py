from __future__ import annotations

from fastapi import APIRouter, Depends

from bookstr.api.deps import get_cache_store, get_registry
from bookstr.models.schemas import SourceInfo, SourcesResponse
from bookstr.tools.cache_store import ContentCacheStore
from bookstr.tools.sources import SourceRegistry

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.get("", response_model=SourcesResponse)
async def list_sources(
    registry: SourceRegistry = Depends(get_registry),
    cache: ContentCacheStore = Depends(get_cache_store),
):
    """Known sources, healthiest first, plus cache occupancy per category."""
    infos = []
    for source_id in registry.known_sources():
        health = registry.health(source_id)
        infos.append(
            SourceInfo(
                source_id=source_id,
                healthy=health.healthy,
                failures=health.failures,
                last_seen=health.last_seen,
            )
        )
    return SourcesResponse(sources=infos, cache=cache.stats())


@router.delete("/cache")
async def clear_cache(cache: ContentCacheStore = Depends(get_cache_store)):
    cache.clear_all()
    return {"status": "cleared"}
