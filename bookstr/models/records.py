from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable


def is_replaceable_kind(kind: int) -> bool:
    return 10000 <= kind < 20000 or kind in (0, 3)


def is_addressable_kind(kind: int) -> bool:
    return 30000 <= kind < 40000


def tag_slug(value: str) -> str:
    """Lowercase a tag value and hyphenate whitespace ("1 John" -> "1-john")."""
    return re.sub(r"\s+", "-", value.strip().lower())


@dataclass(frozen=True, slots=True)
class VerseRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.start:
            start, end = self.end, self.start
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

    def overlaps(self, other: VerseRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"


@dataclass(frozen=True, slots=True)
class Reference:
    """One structured citation: a canonical book, optional chapter and verses."""

    book: str
    chapter: int | None = None
    verses: tuple[VerseRange, ...] = ()

    @property
    def verse(self) -> str | None:
        if not self.verses:
            return None
        return ",".join(str(v) for v in self.verses)

    def overlaps_verses(self, other: Iterable[VerseRange]) -> bool:
        return any(mine.overlaps(theirs) for mine in self.verses for theirs in other)


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    references: tuple[Reference, ...]
    version: str | None = None
    versions: frozenset[str] | None = None
    book_type: str | None = None

    @property
    def requested_versions(self) -> frozenset[str]:
        """All acceptable editions, lowercased. Empty means any edition."""
        wanted = set(self.versions or ())
        if self.version:
            wanted.add(self.version)
        return frozenset(v.lower() for v in wanted)

    @property
    def has_version_constraint(self) -> bool:
        return bool(self.requested_versions)

    def without_version(self) -> ParsedQuery:
        return replace(self, version=None, versions=None)


@dataclass(frozen=True, slots=True)
class ContentRecord:
    id: str
    author: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""

    def tag(self, name: str, default: str | None = None) -> str | None:
        for tag in self.tags:
            if tag and tag[0] == name:
                return tag[1] if len(tag) > 1 else default
        return default

    def tag_values(self, name: str) -> list[str]:
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    @property
    def identifier(self) -> str | None:
        return self.tag("d") or None

    @property
    def dedup_key(self) -> tuple[str, ...]:
        """(author, kind, d) for addressable records, the record id otherwise."""
        identifier = self.identifier
        if identifier:
            return ("a", self.author, str(self.kind), identifier)
        return ("e", self.id)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ContentRecord:
        tags = tuple(tuple(str(part) for part in tag) for tag in payload.get("tags") or [])
        return cls(
            id=str(payload["id"]),
            author=str(payload.get("author") or payload.get("pubkey") or ""),
            created_at=int(payload.get("created_at", 0)),
            kind=int(payload.get("kind", 0)),
            tags=tags,
            content=str(payload.get("content") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
        }


@dataclass(frozen=True, slots=True)
class FilterDescriptor:
    """Coarse source-side selection: record kinds plus tag value predicates."""

    kinds: tuple[int, ...] = ()
    tags: tuple[tuple[str, tuple[str, ...]], ...] = ()
    limit: int | None = None

    def tag_values(self, name: str) -> tuple[str, ...]:
        for tag_name, values in self.tags:
            if tag_name == name:
                return values
        return ()

    def accepts(self, record: ContentRecord) -> bool:
        if self.kinds and record.kind not in self.kinds:
            return False
        for name, values in self.tags:
            wanted = {tag_slug(v) for v in values}
            present = {tag_slug(v) for v in record.tag_values(name)}
            if not wanted & present:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.kinds:
            payload["kinds"] = list(self.kinds)
        for name, values in self.tags:
            payload[f"#{name}"] = list(values)
        if self.limit is not None:
            payload["limit"] = self.limit
        return payload


@dataclass(slots=True)
class CachedRecord:
    record: ContentRecord
    source_ids: frozenset[str] = field(default_factory=frozenset)
    cached_at: float = 0.0
