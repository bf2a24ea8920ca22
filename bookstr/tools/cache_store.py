from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable, Iterable

from loguru import logger

from bookstr.config import settings
from bookstr.models.records import (
    CachedRecord,
    ContentRecord,
    is_addressable_kind,
    is_replaceable_kind,
)

CACHE_VERSION = 1

# Seconds a cached record stays fresh, per category. None never expires.
CACHE_EXPIRY: dict[str, float | None] = {
    "publications": 10 * 60,  # 30040, 30041
    "longform": 5 * 60,  # 30023
    "wikis": 5 * 60,  # 30817, 30818
    "reactions": 5 * 60,  # 7
    "relay_lists": 60 * 60,  # 10002, 10432
    "profile": 30 * 60,  # 0, 10133
    "deletions": None,  # 5
}

_KIND_CATEGORIES = {
    30040: "publications",
    30041: "publications",
    30023: "longform",
    30817: "wikis",
    30818: "wikis",
    7: "reactions",
    10002: "relay_lists",
    10432: "relay_lists",
    0: "profile",
    10133: "profile",
    5: "deletions",
}


def category_for_kind(kind: int) -> str:
    return _KIND_CATEGORIES.get(kind, "publications")


def cache_key(record: ContentRecord) -> str:
    """kind:author:d for addressable records, kind:author for replaceable ones, else the id."""
    identifier = record.identifier
    if is_addressable_kind(record.kind) and identifier:
        return f"{record.kind}:{record.author}:{identifier}"
    if is_replaceable_kind(record.kind):
        return f"{record.kind}:{record.author}"
    return record.id


class ContentCacheStore:
    """Process-wide record cache keyed by content category."""

    def __init__(
        self,
        *,
        persist: bool | None = None,
        cache_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.persist = settings.cache_persist if persist is None else persist
        self.cache_dir = Path(cache_dir or settings.cache_dir)
        self._clock = clock
        self._data: dict[str, dict[str, CachedRecord]] = {name: {} for name in CACHE_EXPIRY}
        if self.persist:
            self.load()

    def _bucket(self, category: str) -> dict[str, CachedRecord]:
        return self._data.setdefault(category, {})

    def _expired(self, category: str, cached: CachedRecord, now: float) -> bool:
        ttl = CACHE_EXPIRY.get(category, CACHE_EXPIRY["publications"])
        if ttl is None or cached.record.identifier:
            return False
        return now - cached.cached_at > ttl

    def get_records(self, category: str) -> list[CachedRecord]:
        bucket = self._bucket(category)
        now = self._clock()
        expired = [key for key, cached in bucket.items() if self._expired(category, cached, now)]
        for key in expired:
            del bucket[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired records from {category}")
        return list(bucket.values())

    def get_record(self, category: str, record_id: str) -> ContentRecord | None:
        for cached in self.get_records(category):
            if cached.record.id == record_id:
                return cached.record
        return None

    def store_records(
        self,
        category: str,
        items: Iterable[tuple[ContentRecord, Iterable[str]]],
    ) -> int:
        """Insert or refresh records. Newest wins per key; source sets are merged.

        Returns the number of entries added or replaced.
        """
        bucket = self._bucket(category)
        now = self._clock()
        changed = 0
        for record, source_ids in items:
            key = cache_key(record)
            sources = frozenset(source_ids)
            existing = bucket.get(key)
            if existing is None or record.created_at > existing.record.created_at:
                merged = sources if existing is None else sources | existing.source_ids
                bucket[key] = CachedRecord(record=record, source_ids=merged, cached_at=now)
                changed += 1
            elif existing.record.id == record.id:
                existing.source_ids = existing.source_ids | sources
                existing.cached_at = now
        if changed and self.persist:
            self.save(category)
        return changed

    def clear_all(self) -> None:
        for bucket in self._data.values():
            bucket.clear()
        if self.persist and self.cache_dir.exists():
            for path in self.cache_dir.glob("*.json"):
                path.unlink()
        logger.info("Cleared content cache")

    def stats(self) -> dict[str, int]:
        return {category: len(bucket) for category, bucket in self._data.items()}

    def _path(self, category: str) -> Path:
        return self.cache_dir / f"{category}.json"

    def save(self, category: str) -> None:
        path = self._path(category)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": CACHE_VERSION,
            "category": category,
            "entries": [
                {
                    "record": cached.record.to_dict(),
                    "source_ids": sorted(cached.source_ids),
                    "cached_at": cached.cached_at,
                }
                for cached in self._bucket(category).values()
            ],
        }
        path.write_text(json.dumps(payload, ensure_ascii=True), encoding="utf-8")

    def load(self) -> None:
        if not self.cache_dir.exists():
            return
        for path in self.cache_dir.glob("*.json"):
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable cache file {path}: {e}")
                continue
            if payload.get("version") != CACHE_VERSION:
                continue
            bucket = self._bucket(str(payload.get("category") or path.stem))
            for entry in payload.get("entries") or []:
                try:
                    record = ContentRecord.from_dict(entry["record"])
                except (KeyError, TypeError, ValueError):
                    continue
                bucket[cache_key(record)] = CachedRecord(
                    record=record,
                    source_ids=frozenset(entry.get("source_ids") or ()),
                    cached_at=float(entry.get("cached_at") or 0.0),
                )
