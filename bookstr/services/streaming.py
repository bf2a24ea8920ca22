from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from bookstr.books.parser import format_reference, record_title
from bookstr.models.events import EventType, SearchEvent
from bookstr.models.records import ContentRecord, ParsedQuery

if TYPE_CHECKING:
    from bookstr.services.search_controller import SearchOutcome


def record_to_dict(record: ContentRecord, sources: Iterable[str] | None = None) -> dict[str, Any]:
    data = record.to_dict()
    data["title"] = record_title(record)
    if sources is not None:
        data["sources"] = sorted(sources)
    return data


def parsed_query_to_dict(parsed: ParsedQuery | None, book_type: str) -> dict[str, Any] | None:
    if parsed is None:
        return None
    return {
        "references": [
            {
                "book": ref.book,
                "chapter": ref.chapter,
                "verse": ref.verse,
                "label": format_reference(ref, book_type),
            }
            for ref in parsed.references
        ],
        "version": parsed.version,
        "versions": sorted(parsed.versions) if parsed.versions else None,
    }


def search_started(
    attempt_id: str,
    query: str,
    book_type: str,
    parsed: ParsedQuery | None,
) -> SearchEvent:
    return SearchEvent(
        event=EventType.SEARCH_STARTED,
        data={
            "attempt_id": attempt_id,
            "query": query,
            "book_type": book_type,
            "parsed_query": parsed_query_to_dict(parsed, book_type),
        },
    )


def cache_hit(attempt_id: str, count: int) -> SearchEvent:
    return SearchEvent(event=EventType.CACHE_HIT, data={"attempt_id": attempt_id, "count": count})


def results_updated(attempt_id: str, records: Iterable[ContentRecord]) -> SearchEvent:
    """Snapshot of the result set so far, in arrival order (not ranked yet)."""
    return SearchEvent(
        event=EventType.RESULTS_UPDATED,
        data={
            "attempt_id": attempt_id,
            "results": [record_to_dict(record) for record in records],
        },
    )


def source_completed(
    attempt_id: str,
    source_id: str,
    *,
    completed: int,
    total: int,
    error: str | None = None,
) -> SearchEvent:
    data: dict[str, Any] = {
        "attempt_id": attempt_id,
        "source_id": source_id,
        "completed": completed,
        "total": total,
    }
    if error:
        data["error"] = error
    return SearchEvent(event=EventType.SOURCE_COMPLETED, data=data)


def version_fallback(attempt_id: str, parsed: ParsedQuery) -> SearchEvent:
    return SearchEvent(
        event=EventType.VERSION_FALLBACK,
        data={
            "attempt_id": attempt_id,
            "requested_versions": sorted(parsed.requested_versions),
        },
    )


def search_complete(outcome: SearchOutcome) -> SearchEvent:
    return SearchEvent(event=EventType.SEARCH_COMPLETE, data=outcome.to_dict())


def error(message: str, attempt_id: str | None = None) -> SearchEvent:
    data: dict[str, Any] = {"message": message}
    if attempt_id:
        data["attempt_id"] = attempt_id
    return SearchEvent(event=EventType.ERROR, data=data)
