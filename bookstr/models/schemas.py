from __future__ import annotations

from typing import Any

from pydantic import BaseModel


# --- Requests ---


class SearchRequest(BaseModel):
    query: str
    book_type: str | None = None


# --- Responses ---


class ReferenceResponse(BaseModel):
    book: str
    chapter: int | None = None
    verse: str | None = None
    label: str


class ParsedQueryResponse(BaseModel):
    references: list[ReferenceResponse]
    version: str | None = None
    versions: list[str] | None = None


class RecordResponse(BaseModel):
    id: str
    author: str
    created_at: int
    kind: int
    tags: list[list[str]]
    content: str
    title: str
    sources: list[str] = []


class SearchResponse(BaseModel):
    query: str
    book_type: str
    parsed_query: ParsedQueryResponse | None
    results: list[RecordResponse]
    state: str
    version_not_found: bool
    fallback_used: bool
    sources_queried: list[str]
    sources_completed: int
    skipped: int
    cancelled: bool
    parse_failed: bool
    verified: dict[str, bool] = {}
    runtime_ms: int = 0


class BookTypeInfo(BaseModel):
    name: str
    display_name: str
    books: int
    versions: dict[str, str]


class BookTypesResponse(BaseModel):
    book_types: list[BookTypeInfo]
    default: str


class SourceInfo(BaseModel):
    source_id: str
    healthy: bool
    failures: int
    last_seen: float


class SourcesResponse(BaseModel):
    sources: list[SourceInfo]
    cache: dict[str, Any]
