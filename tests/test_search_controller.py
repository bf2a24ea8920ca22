from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookstr.models.events import EventType, SearchEvent
from bookstr.models.records import ContentRecord
from bookstr.services.fanout import ContentFilter
from bookstr.services.ranking import StaticTrustScores
from bookstr.services.search_controller import BookSearch, SearchState
from bookstr.tools.cache_store import ContentCacheStore
from bookstr.tools.sources import SourceRegistry, StaticSource


def _passage(
    record_id: str,
    *,
    author: str = "alice",
    created_at: int = 10,
    d: str | None = None,
    book: str = "john",
    chapter: str = "3",
    verse: str = "16",
    version: str | None = None,
) -> ContentRecord:
    tags = [("d", d or f"{book}-{chapter}-{verse}"), ("type", "bible"), ("book", book), ("chapter", chapter), ("verse", verse)]
    if version:
        tags.append(("version", version))
    return ContentRecord(
        id=record_id,
        author=author,
        created_at=created_at,
        kind=30041,
        tags=tuple(tags),
        content=f"{book} {chapter}:{verse}",
    )


def _engine(sources, events: list[SearchEvent] | None = None, **kwargs) -> BookSearch:
    kwargs.setdefault("cache_store", ContentCacheStore(persist=False))
    kwargs.setdefault("debounce_ms", 10)
    return BookSearch(
        SourceRegistry(sources),
        on_event=events.append if events is not None else None,
        **kwargs,
    )


def _types(events: list[SearchEvent]) -> list[EventType]:
    return [event.event for event in events]


@pytest.mark.asyncio
async def test_end_to_end_dedup_rank_and_failed_source():
    old = _passage("old", author="alice", created_at=10)
    new = _passage("new", author="alice", created_at=20)
    bobs = _passage("bobs", author="bob", created_at=5)
    events: list[SearchEvent] = []
    engine = _engine(
        [
            StaticSource("s1", [old]),
            StaticSource("s2", [new, bobs], delay_s=0.01),
            StaticSource("s3", [], fail_with=ConnectionError("refused")),
        ],
        events,
        trust=StaticTrustScores({"bob": 50, "alice": 10}),
    )

    outcome = await engine.search("John 3:16")

    assert [r.id for r in outcome.results] == ["bobs", "new"]
    assert outcome.sources_completed == 3
    assert sorted(outcome.sources_queried) == ["s1", "s2", "s3"]
    assert outcome.state == SearchState.RANKED
    assert not outcome.fallback_used
    assert _types(events)[-1] == EventType.SEARCH_COMPLETE
    failed = [e for e in events if e.event == EventType.SOURCE_COMPLETED and e.data.get("error")]
    assert [e.data["source_id"] for e in failed] == ["s3"]


@pytest.mark.asyncio
async def test_unknown_version_falls_back_to_any_version():
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("s1", [_passage("kjv", version="kjv")])], events)

    outcome = await engine.search("John 3:16 XYZ")

    assert outcome.parsed_query.version == "XYZ"
    assert outcome.version_not_found
    assert outcome.fallback_used
    assert [r.id for r in outcome.results] == ["kjv"]
    assert EventType.VERSION_FALLBACK in _types(events)
    attempts = {e.data["attempt_id"] for e in events if e.event == EventType.SOURCE_COMPLETED}
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_fallback_not_triggered_without_version():
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("s1", [_passage("acts", book="acts")])], events)

    outcome = await engine.search("John 3:16")

    assert outcome.results == []
    assert not outcome.fallback_used
    assert EventType.VERSION_FALLBACK not in _types(events)


@pytest.mark.asyncio
async def test_matching_version_is_satisfied_without_fallback():
    engine = _engine(
        [StaticSource("s1", [_passage("kjv", version="kjv", d="a"), _passage("niv", version="niv", d="b")])]
    )

    outcome = await engine.search("John 3:16 KJV")

    assert [r.id for r in outcome.results] == ["kjv"]
    assert not outcome.version_not_found


@pytest.mark.asyncio
async def test_new_search_cancels_the_previous_one():
    john = _passage("john")
    romans = _passage("romans", book="romans", chapter="8", verse="28")
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("slow", [john, romans], delay_s=0.05)], events)

    first = asyncio.create_task(engine.search("John 3:16"))
    await asyncio.sleep(0.01)
    second = await engine.search("Rom 8:28")
    first_outcome = await first

    assert first_outcome.cancelled
    assert first_outcome.results == []
    assert [r.id for r in second.results] == ["romans"]

    first_id = events[0].data["attempt_id"]
    assert [e.event for e in events if e.data.get("attempt_id") == first_id] == [EventType.SEARCH_STARTED]
    complete = [e for e in events if e.event == EventType.SEARCH_COMPLETE]
    assert len(complete) == 1


@pytest.mark.asyncio
async def test_explicit_cancel_stops_delivery():
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("slow", [_passage("john")], delay_s=0.05)], events)

    task = asyncio.create_task(engine.search("John 3:16"))
    await asyncio.sleep(0.01)
    engine.cancel()
    engine.cancel()
    outcome = await task

    assert outcome.cancelled
    assert EventType.RESULTS_UPDATED not in _types(events)
    assert EventType.SEARCH_COMPLETE not in _types(events)


@pytest.mark.asyncio
async def test_unparsable_query_completes_empty():
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("s1", [_passage("john")])], events)

    outcome = await engine.search("not a citation")

    assert outcome.parse_failed
    assert outcome.results == []
    assert _types(events) == [EventType.SEARCH_STARTED, EventType.SEARCH_COMPLETE]
    assert events[-1].data["parse_failed"] is True


@pytest.mark.asyncio
async def test_cache_is_consulted_first_and_validated():
    cache = ContentCacheStore(persist=False)
    cache.store_records(
        "publications",
        [
            (_passage("cached"), ["s9"]),
            (_passage("other", book="romans", chapter="8"), ["s9"]),
        ],
    )
    events: list[SearchEvent] = []
    engine = _engine([], events, cache_store=cache)

    outcome = await engine.search("John 3:16")

    assert [r.id for r in outcome.results] == ["cached"]
    assert outcome.provenance == {"cached": ["s9"]}
    hit = next(e for e in events if e.event == EventType.CACHE_HIT)
    assert hit.data["count"] == 1


@pytest.mark.asyncio
async def test_network_results_are_written_back_to_cache():
    cache = ContentCacheStore(persist=False)
    engine = _engine([StaticSource("s1", [_passage("john")])], cache_store=cache)

    await engine.search("John 3:16")

    [cached] = cache.get_records("publications")
    assert cached.record.id == "john"
    assert cached.source_ids == frozenset({"s1"})


@pytest.mark.asyncio
async def test_burst_of_records_is_coalesced_into_one_update():
    records = [_passage(f"r{i}", d=f"john-3-{i}", verse=str(i)) for i in range(1, 6)]
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("s1", records)], events, debounce_ms=200)

    outcome = await engine.search("John 3")

    updates = [e for e in events if e.event == EventType.RESULTS_UPDATED]
    assert len(updates) == 1
    assert len(updates[0].data["results"]) == 5
    assert len(outcome.results) == 5


@pytest.mark.asyncio
async def test_non_matching_records_are_skipped():
    engine = _engine(
        [StaticSource("s1", [_passage("hit", verse="5-8", d="a"), _passage("miss", verse="9", d="b")])]
    )

    outcome = await engine.search("John 3:6")

    assert [r.id for r in outcome.results] == ["hit"]
    assert outcome.skipped == 1


@pytest.mark.asyncio
async def test_authors_are_verified_when_identities_are_known():
    verifier = MagicMock()
    verifier.verify = AsyncMock(return_value=False)
    engine = _engine(
        [StaticSource("s1", [_passage("john")])],
        verifier=verifier,
        identities={"alice": "alice@example.com"},
    )

    outcome = await engine.search("John 3:16")

    verifier.verify.assert_awaited_once_with("alice@example.com", "alice")
    assert outcome.verified == {"alice": False}
    assert [r.id for r in outcome.results] == ["john"]


@pytest.mark.asyncio
async def test_stream_yields_events_until_complete():
    engine = _engine([StaticSource("s1", [_passage("john")])])

    events = [event async for event in engine.stream("John 3:16")]

    assert events[0].event == EventType.SEARCH_STARTED
    assert events[-1].event == EventType.SEARCH_COMPLETE
    assert events[-1].data["results"][0]["title"] == "John 3:16"


@pytest.mark.asyncio
async def test_prefixed_book_type_drives_filters_and_validation():
    fatiha = ContentRecord(
        id="q1",
        author="alice",
        created_at=10,
        kind=30041,
        tags=(("d", "al-fatiha-1-1"), ("type", "quran"), ("book", "al-fatiha"), ("chapter", "1"), ("verse", "1")),
    )
    events: list[SearchEvent] = []
    engine = _engine([StaticSource("s1", [fatiha, _passage("john")])], events)

    outcome = await engine.search("[[book:quran:Al-Fatiha 1:1]]", "bible")

    assert [r.id for r in outcome.results] == ["q1"]
    assert outcome.book_type == "quran"
    assert not outcome.fallback_used
    assert events[0].data["book_type"] == "quran"


@pytest.mark.asyncio
async def test_deleted_and_muted_records_are_dropped_from_results():
    kept = _passage("kept", d="a")
    deleted = _passage("deleted", d="b")
    muted = _passage("muted", author="troll", d="c")
    deletion = ContentRecord(
        id="del",
        author="alice",
        created_at=30,
        kind=5,
        tags=(("e", "deleted"), ("k", "30041")),
    )
    engine = _engine(
        [StaticSource("s1", [kept, deleted, muted]), StaticSource("s2", [deletion], delay_s=0.01)],
        content_filter=ContentFilter(muted_authors={"troll"}),
    )

    outcome = await engine.search("John 3:16")

    assert [r.id for r in outcome.results] == ["kept"]
    assert "deleted" in engine.content_filter.deleted_ids


@pytest.mark.asyncio
async def test_deleted_records_are_not_served_from_cache():
    cache = ContentCacheStore(persist=False)
    cache.store_records("publications", [(_passage("gone"), ["s9"])])
    engine = _engine([], cache_store=cache, content_filter=ContentFilter(deleted_ids={"gone"}))

    outcome = await engine.search("John 3:16")

    assert outcome.results == []
