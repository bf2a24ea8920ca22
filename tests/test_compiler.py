from __future__ import annotations

from bookstr.books.compiler import compile_filters, describe_filter
from bookstr.config import settings
from bookstr.models.records import ContentRecord, Reference, VerseRange


def _record(**tags: str) -> ContentRecord:
    return ContentRecord(
        id="x",
        author="a",
        created_at=1,
        kind=30041,
        tags=tuple((k, v) for k, v in tags.items()),
    )


def test_compile_stops_at_chapter_and_slugs_book():
    refs = [Reference(book="1 John", chapter=2, verses=(VerseRange(3, 3),))]

    filters = compile_filters(refs, "bible")

    assert len(filters) == 1
    descriptor = filters[0]
    assert descriptor.kinds == tuple(settings.book_kinds)
    assert descriptor.tag_values("type") == ("bible",)
    assert descriptor.tag_values("book") == ("1-john",)
    assert descriptor.tag_values("chapter") == ("2",)
    assert descriptor.tag_values("verse") == ()
    assert describe_filter(descriptor) == "type:bible book:1-john chapter:2"


def test_one_filter_per_reference_and_version():
    refs = [Reference(book="John", chapter=3), Reference(book="Romans", chapter=8)]

    filters = compile_filters(refs, "bible", versions={"KJV", "NIV"})

    assert len(filters) == 4
    assert {f.tag_values("version") for f in filters} == {("kjv",), ("niv",)}


def test_single_version_and_duplicates_collapse():
    refs = [Reference(book="John", chapter=3), Reference(book="John", chapter=3)]

    filters = compile_filters(refs, "bible", version="KJV")

    assert len(filters) == 1
    assert filters[0].tag_values("version") == ("kjv",)


def test_filters_over_select_every_verse_in_the_chapter():
    filters = compile_filters([Reference(book="John", chapter=3, verses=(VerseRange(16, 16),))], "bible")

    assert filters[0].accepts(_record(type="bible", book="john", chapter="3", verse="1"))
    assert not filters[0].accepts(_record(type="bible", book="john", chapter="4", verse="16"))


def test_filter_wire_shape():
    filters = compile_filters([Reference(book="Song of Solomon")], "bible", version="kjv")

    assert filters[0].to_dict() == {
        "kinds": list(settings.book_kinds),
        "#type": ["bible"],
        "#book": ["song-of-solomon"],
        "#version": ["kjv"],
    }
