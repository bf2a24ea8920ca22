from __future__ import annotations

from bookstr.books import catalog
from bookstr.books.parser import parse_verse_ranges
from bookstr.errors import ParseFailure
from bookstr.models.records import ContentRecord, ParsedQuery, Reference, tag_slug

BOOK_TAGS = ("type", "book", "chapter", "verse", "version")


def extract_book_metadata(record: ContentRecord) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for name in BOOK_TAGS:
        value = record.tag(name)
        if value:
            metadata[name] = value
    return metadata


def is_book_record(record: ContentRecord, book_type: str | None = None) -> bool:
    """A record is a book passage if it carries any of the book tags.

    When ``book_type`` is given, a record declaring a different type is rejected.
    """
    record_type = record.tag("type")
    if book_type and record_type and record_type.lower() != book_type.lower():
        return False
    return any(record.tag(name) for name in ("type", "book", "chapter", "version"))


def _same_book(requested: str, declared: str, book_type: str) -> bool:
    canonical = catalog.canonical_book(declared, book_type)
    if canonical is not None:
        return canonical.lower() == requested.lower()
    return tag_slug(declared) == tag_slug(requested)


def _same_chapter(requested: int, declared: str) -> bool:
    declared = declared.strip()
    if declared.isdigit():
        return int(declared) == requested
    return declared == str(requested)


def _verses_overlap(reference: Reference, declared: str) -> bool:
    try:
        ranges = parse_verse_ranges(declared)
    except ParseFailure:
        requested = (reference.verse or "").lower()
        declared = declared.strip().lower()
        return declared == requested or declared in requested or requested in declared
    if not ranges:
        return True
    return reference.overlaps_verses(ranges)


def _reference_matches(reference: Reference, metadata: dict[str, str], book_type: str) -> bool:
    book = metadata.get("book")
    if not book or not _same_book(reference.book, book, book_type):
        return False
    if reference.chapter is None:
        return True

    chapter = metadata.get("chapter")
    if chapter is None or not _same_chapter(reference.chapter, chapter):
        return False
    if not reference.verses:
        return True

    verse = metadata.get("verse")
    if verse is None:
        return True
    return _verses_overlap(reference, verse)


def matches(
    record: ContentRecord,
    parsed_query: ParsedQuery,
    book_type: str,
    *,
    check_version: bool = True,
) -> bool:
    """True if the record satisfies the query.

    A declared version outside the requested set rejects the record outright.
    References are OR-ed and the first one that matches decides.
    """
    if not is_book_record(record, book_type):
        return False

    metadata = extract_book_metadata(record)
    record_version = metadata.get("version")
    if check_version and parsed_query.has_version_constraint and record_version:
        if record_version.lower() not in parsed_query.requested_versions:
            return False

    for reference in parsed_query.references:
        if _reference_matches(reference, metadata, book_type):
            return True
    return False
