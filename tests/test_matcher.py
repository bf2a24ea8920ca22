from __future__ import annotations

from bookstr.books.matcher import extract_book_metadata, is_book_record, matches
from bookstr.books.parser import parse
from bookstr.models.records import ContentRecord, ParsedQuery, Reference


def _passage(record_id: str = "r1", **tags: str) -> ContentRecord:
    return ContentRecord(
        id=record_id,
        author="author",
        created_at=100,
        kind=30041,
        tags=tuple((name, value) for name, value in tags.items()),
        content="text",
    )


def test_overlapping_verse_range_matches():
    record = _passage(type="bible", book="john", chapter="3", verse="5-8")

    assert matches(record, parse("John 3:6", "bible"), "bible")
    assert not matches(record, parse("John 3:9", "bible"), "bible")
    assert matches(record, parse("John 3:1-5", "bible"), "bible")


def test_declared_version_must_match_requested_version():
    record = _passage(type="bible", book="john", chapter="3", verse="16", version="niv")

    assert not matches(record, parse("John 3:16 KJV", "bible"), "bible")
    assert matches(record, parse("John 3:16 NIV", "bible"), "bible")
    assert matches(record, parse("John 3:16 | KJV NIV", "bible"), "bible")


def test_version_check_can_be_skipped_for_fallback():
    record = _passage(type="bible", book="john", chapter="3", verse="16", version="niv")

    assert matches(record, parse("John 3:16 KJV", "bible"), "bible", check_version=False)


def test_record_without_version_passes_version_check():
    record = _passage(type="bible", book="john", chapter="3", verse="16")

    assert matches(record, parse("John 3:16 KJV", "bible"), "bible")


def test_unknown_version_hint_compares_case_insensitively():
    record = _passage(type="bible", book="john", chapter="3", verse="16", version="xyz")

    assert matches(record, parse("John 3:16 XYZ", "bible"), "bible")


def test_references_are_ored():
    record = _passage(type="bible", book="romans", chapter="8", verse="28")

    assert matches(record, parse("John 3:16; Rom 8:28", "bible"), "bible")


def test_chapter_requested_but_missing_on_record_fails():
    record = _passage(type="bible", book="john")

    assert not matches(record, parse("John 3", "bible"), "bible")
    assert matches(record, parse("John", "bible"), "bible")


def test_verse_requested_but_missing_on_record_matches():
    record = _passage(type="bible", book="john", chapter="3")

    assert matches(record, parse("John 3:16", "bible"), "bible")


def test_book_tag_variants_resolve_through_aliases():
    assert matches(_passage(type="bible", book="1-john", chapter="2"), parse("I John 2", "bible"), "bible")
    assert matches(_passage(type="bible", book="Jn", chapter="1"), parse("John 1", "bible"), "bible")
    assert not matches(_passage(type="bible", book="jude", chapter="1"), parse("John 1", "bible"), "bible")


def test_other_book_type_is_rejected():
    record = _passage(type="quran", book="john", chapter="3")

    assert not is_book_record(record, "bible")
    assert not matches(record, ParsedQuery(references=(Reference(book="John"),)), "bible")


def test_non_book_record_is_rejected():
    record = ContentRecord(id="n", author="a", created_at=1, kind=1, tags=(("t", "bible"),))

    assert not is_book_record(record)
    assert extract_book_metadata(record) == {}


def test_unparsable_verse_falls_back_to_text_comparison():
    record = _passage(type="bible", book="john", chapter="3", verse="16a")

    assert matches(record, parse("John 3:16", "bible"), "bible")
    assert not matches(record, parse("John 3:17", "bible"), "bible")
