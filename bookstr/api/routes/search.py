from __future__ import annotations

import json as _json

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse

from bookstr.api.deps import get_search
from bookstr.models.schemas import SearchRequest, SearchResponse
from bookstr.services import logger as log_service
from bookstr.services import streaming
from bookstr.services.search_controller import BookSearch

router = APIRouter(prefix="/api/search", tags=["search"])


@router.post("", response_model=SearchResponse)
async def search(request: SearchRequest, engine: BookSearch = Depends(get_search)):
    """Resolve a citation and return the ranked results once every source finished."""
    outcome = await engine.search(request.query, request.book_type)
    return outcome.to_dict()


@router.get("/stream")
async def stream_search(
    q: str = Query(..., description="Citation, e.g. 'John 3:16 KJV'"),
    book_type: str | None = Query(None),
    engine: BookSearch = Depends(get_search),
):
    """SSE endpoint that streams incremental result snapshots, then the ranked set."""

    async def event_generator():
        try:
            async for event in engine.stream(q, book_type):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.data),
                }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in search stream",
                error=str(e),
                query=q[:100],
            )
            error_event = streaming.error("Search stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator())
