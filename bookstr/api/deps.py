from __future__ import annotations

from functools import lru_cache

from bookstr.services.fanout import ContentFilter
from bookstr.services.ranking import StaticTrustScores
from bookstr.services.search_controller import BookSearch
from bookstr.tools.cache_store import ContentCacheStore
from bookstr.tools.sources import SourceRegistry


@lru_cache
def get_registry() -> SourceRegistry:
    return SourceRegistry.from_settings()


@lru_cache
def get_cache_store() -> ContentCacheStore:
    return ContentCacheStore()


@lru_cache
def get_content_filter() -> ContentFilter:
    return ContentFilter.from_settings()


@lru_cache
def get_trust_scores() -> StaticTrustScores:
    return StaticTrustScores()


def get_search() -> BookSearch:
    """A fresh engine per request, sharing the process-wide registry, cache, content filter and trust scores."""
    return BookSearch(
        get_registry(),
        cache_store=get_cache_store(),
        trust=get_trust_scores(),
        content_filter=get_content_filter(),
    )
