from __future__ import annotations

from bookstr.models.records import ContentRecord
from bookstr.services.result_set import Provenance, ResultSet, insert_if_newer


def _addressable(record_id: str, created_at: int, d: str = "john-3-16", author: str = "alice") -> ContentRecord:
    return ContentRecord(
        id=record_id,
        author=author,
        created_at=created_at,
        kind=30041,
        tags=(("d", d), ("book", "john")),
    )


def test_inserting_same_record_twice_is_idempotent():
    result_set = ResultSet()
    record = _addressable("a", 10)

    assert insert_if_newer(result_set, record) is True
    before = result_set.snapshot()
    assert insert_if_newer(result_set, record) is False
    assert result_set.snapshot() == before
    assert len(result_set) == 1


def test_newest_wins_in_either_order():
    old, new = _addressable("old", 10), _addressable("new", 20)

    forward = ResultSet()
    forward.insert_if_newer(old)
    assert forward.insert_if_newer(new) is True

    backward = ResultSet()
    backward.insert_if_newer(new)
    assert backward.insert_if_newer(old) is False

    assert forward.snapshot() == backward.snapshot() == (new,)


def test_equal_timestamp_keeps_existing_record():
    result_set = ResultSet()
    first, second = _addressable("first", 10), _addressable("second", 10)

    result_set.insert_if_newer(first)

    assert result_set.insert_if_newer(second) is False
    assert result_set.snapshot() == (first,)


def test_replacement_keeps_position():
    result_set = ResultSet()
    result_set.insert_if_newer(_addressable("a1", 10, d="a"))
    result_set.insert_if_newer(_addressable("b1", 10, d="b"))
    result_set.insert_if_newer(_addressable("a2", 30, d="a"))

    assert [r.id for r in result_set.snapshot()] == ["a2", "b1"]


def test_different_authors_or_identifiers_do_not_collide():
    result_set = ResultSet()
    result_set.insert_if_newer(_addressable("a", 10, author="alice"))
    result_set.insert_if_newer(_addressable("b", 10, author="bob"))
    result_set.insert_if_newer(_addressable("c", 10, d="john-3-17"))

    assert len(result_set) == 3


def test_records_without_identifier_are_keyed_by_id():
    result_set = ResultSet()
    plain_a = ContentRecord(id="x1", author="alice", created_at=5, kind=1)
    plain_b = ContentRecord(id="x2", author="alice", created_at=9, kind=1)

    assert result_set.insert_if_newer(plain_a)
    assert result_set.insert_if_newer(plain_b)
    assert len(result_set) == 2
    assert plain_a in result_set


def test_snapshot_is_immutable_copy():
    result_set = ResultSet()
    result_set.insert_if_newer(_addressable("a", 1, d="a"))
    snapshot = result_set.snapshot()

    result_set.insert_if_newer(_addressable("b", 1, d="b"))

    assert len(snapshot) == 1
    assert isinstance(snapshot, tuple)


def test_provenance_tolerates_duplicate_and_out_of_order_delivery():
    provenance = Provenance()

    assert provenance.add("r1", "s2") is True
    assert provenance.add("r1", "s1") is True
    assert provenance.add("r1", "s2") is False

    assert provenance.sources_for("r1") == frozenset({"s1", "s2"})
    assert provenance.sources_for("missing") == frozenset()
    assert provenance.to_dict() == {"r1": ["s1", "s2"]}


def test_retain_drops_rejected_records():
    result_set = ResultSet()
    result_set.insert_if_newer(_addressable("a", 10, d="a"))
    result_set.insert_if_newer(_addressable("b", 10, d="b"))

    assert result_set.retain(lambda record: record.id != "b") == 1
    assert [r.id for r in result_set.snapshot()] == ["a"]
    assert result_set.retain(lambda record: True) == 0
