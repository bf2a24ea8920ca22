from __future__ import annotations

import pytest

from bookstr.models.records import ContentRecord
from bookstr.services.cache_gate import CacheGate
from bookstr.tools.cache_store import ContentCacheStore, cache_key, category_for_kind


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _passage(record_id: str, created_at: int, d: str | None = "john-3-16") -> ContentRecord:
    tags = [("type", "bible"), ("book", "john"), ("chapter", "3")]
    if d:
        tags.append(("d", d))
    return ContentRecord(id=record_id, author="alice", created_at=created_at, kind=30041, tags=tuple(tags))


def test_cache_keys_follow_record_kind():
    assert cache_key(_passage("a", 1)) == "30041:alice:john-3-16"
    assert cache_key(ContentRecord(id="p", author="bob", created_at=1, kind=0)) == "0:bob"
    assert cache_key(ContentRecord(id="n", author="bob", created_at=1, kind=1)) == "n"
    assert category_for_kind(30041) == "publications"
    assert category_for_kind(5) == "deletions"


def test_newest_wins_and_sources_merge():
    store = ContentCacheStore(persist=False)

    store.store_records("publications", [(_passage("old", 10), ["s1"])])
    store.store_records("publications", [(_passage("new", 20), ["s2"])])
    store.store_records("publications", [(_passage("older", 5), ["s3"])])
    store.store_records("publications", [(_passage("new", 20), ["s4"])])

    [cached] = store.get_records("publications")
    assert cached.record.id == "new"
    assert cached.source_ids == frozenset({"s1", "s2", "s4"})
    assert store.get_record("publications", "new").id == "new"
    assert store.get_record("publications", "old") is None


def test_records_without_d_tag_expire_but_addressable_ones_do_not():
    clock = _Clock()
    store = ContentCacheStore(persist=False, clock=clock)
    store.store_records(
        "publications",
        [(_passage("kept", 1), ["s1"]), (_passage("dropped", 1, d=None), ["s1"])],
    )

    clock.now += 11 * 60

    assert [c.record.id for c in store.get_records("publications")] == ["kept"]


def test_clear_all_empties_every_category():
    store = ContentCacheStore(persist=False)
    store.store_records("publications", [(_passage("a", 1), ["s1"])])

    store.clear_all()

    assert store.get_records("publications") == []


def test_persistence_round_trip(tmp_path):
    store = ContentCacheStore(persist=True, cache_dir=tmp_path)
    store.store_records("publications", [(_passage("a", 1), ["s1"])])

    reloaded = ContentCacheStore(persist=True, cache_dir=tmp_path)

    [cached] = reloaded.get_records("publications")
    assert cached.record == _passage("a", 1)
    assert cached.source_ids == frozenset({"s1"})


@pytest.mark.asyncio
async def test_cache_gate_applies_predicate():
    store = ContentCacheStore(persist=False)
    store.store_records(
        "publications",
        [(_passage("a", 1, d="a"), ["s1"]), (_passage("b", 1, d="b"), [])],
    )
    gate = CacheGate(store, enabled=True)

    hits = await gate.lookup("publications", lambda record: record.id == "a")

    assert hits == [(_passage("a", 1, d="a"), frozenset({"s1"}))]


@pytest.mark.asyncio
async def test_disabled_cache_gate_returns_nothing():
    store = ContentCacheStore(persist=False)
    store.store_records("publications", [(_passage("a", 1), ["s1"])])

    assert await CacheGate(store, enabled=False).lookup("publications", lambda r: True) == []
