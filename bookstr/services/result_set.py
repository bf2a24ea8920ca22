from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from bookstr.models.records import ContentRecord


@dataclass(slots=True)
class ResultSet:
    """Records of one query attempt, one per dedup key, in first-seen order.

    Newest ``created_at`` wins for records sharing a key; a replacement keeps
    the slot of the record it replaces.
    """

    _records: dict[tuple[str, ...], ContentRecord] = field(default_factory=dict)

    def insert_if_newer(self, record: ContentRecord) -> bool:
        key = record.dedup_key
        existing = self._records.get(key)
        if existing is None:
            self._records[key] = record
            return True
        if record.created_at <= existing.created_at:
            return False
        self._records[key] = record
        return record.id != existing.id

    def snapshot(self) -> tuple[ContentRecord, ...]:
        return tuple(self._records.values())

    def retain(self, keep: Callable[[ContentRecord], bool]) -> int:
        """Drop records ``keep`` rejects. Returns how many were dropped."""
        dropped = [key for key, record in self._records.items() if not keep(record)]
        for key in dropped:
            del self._records[key]
        return len(dropped)

    def get(self, key: tuple[str, ...]) -> ContentRecord | None:
        return self._records.get(key)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record: object) -> bool:
        if not isinstance(record, ContentRecord):
            return False
        return self._records.get(record.dedup_key) == record


def insert_if_newer(result_set: ResultSet, record: ContentRecord) -> bool:
    return result_set.insert_if_newer(record)


@dataclass(slots=True)
class Provenance:
    """record id -> ids of the sources that returned it."""

    _seen: dict[str, set[str]] = field(default_factory=dict)

    def add(self, record_id: str, source_id: str) -> bool:
        """Record a delivery. Returns False for a repeat from the same source."""
        sources = self._seen.setdefault(record_id, set())
        if source_id in sources:
            return False
        sources.add(source_id)
        return True

    def sources_for(self, record_id: str) -> frozenset[str]:
        return frozenset(self._seen.get(record_id, ()))

    def to_dict(self) -> dict[str, list[str]]:
        return {record_id: sorted(sources) for record_id, sources in self._seen.items()}

    def __len__(self) -> int:
        return len(self._seen)
