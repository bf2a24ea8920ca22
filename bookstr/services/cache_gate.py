from __future__ import annotations

from typing import Callable

from loguru import logger

from bookstr.config import settings
from bookstr.models.records import ContentRecord
from bookstr.tools.cache_store import ContentCacheStore


class CacheGate:
    """Read side of the content cache, consulted before any fan-out."""

    def __init__(self, store: ContentCacheStore, *, enabled: bool | None = None):
        self.store = store
        self.enabled = settings.cache_enabled if enabled is None else enabled

    async def lookup(
        self,
        category: str,
        predicate: Callable[[ContentRecord], bool],
    ) -> list[tuple[ContentRecord, frozenset[str]]]:
        if not self.enabled:
            return []
        hits: list[tuple[ContentRecord, frozenset[str]]] = []
        for cached in self.store.get_records(category):
            try:
                keep = predicate(cached.record)
            except Exception as e:
                logger.warning(f"Cache predicate failed on {cached.record.id}: {e}")
                continue
            if keep:
                hits.append((cached.record, cached.source_ids))
        return hits

    def write_back(
        self,
        category: str,
        items: list[tuple[ContentRecord, frozenset[str]]],
    ) -> int:
        if not self.enabled or not items:
            return 0
        return self.store.store_records(category, items)
