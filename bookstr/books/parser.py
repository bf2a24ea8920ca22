"""Citation parser: "Gen 3:5-8 KJV" -> ParsedQuery.

Grammar accepted (case-insensitive, whitespace tolerant):

    [[ ... ]]                         optional wikilink brackets
    book:: | book:<type>: | bible:    optional prefixes
    <book> [<chapter>[-<chapter>] [(:|.)<verses>]] [<version>]
    ... ; ...  and  ... , <book> ...  lists of citations
    ... | V1 V2                       acceptable versions

``<verses>`` is a single verse, a range ``a-b`` or a comma separated list of
either. A bare ``4:1`` after a ``;`` reuses the previous book.
"""

from __future__ import annotations

import re

from loguru import logger

from bookstr.books import catalog
from bookstr.errors import ParseFailure
from bookstr.models.records import ContentRecord, ParsedQuery, Reference, VerseRange

_DASH = r"[-–—]"
_RANGE = rf"\d+(?:\s*{_DASH}\s*\d+)?"

_CITATION_RE = re.compile(
    rf"""^
    (?P<book>(?:[1-4]\s*)?[^\d]+?)\s*
    (?:
        (?P<chapter>\d+)
        (?:\s*{_DASH}\s*(?P<chapter_end>\d+))?
        (?:\s*[:.]\s*(?P<verses>{_RANGE}(?:\s*,\s*{_RANGE})*))?
    )?
    $""",
    re.VERBOSE,
)
_PREFIX_RE = re.compile(r"^(?:book::|book:(?P<type>[A-Za-z][\w-]*):|bible:)\s*", re.IGNORECASE)
_NEW_CITATION_RE = re.compile(r"^\s*(?:[1-4]\s*)?[A-Za-z]|:")
_CARRY_OVER_RE = re.compile(rf"^[\d\s:.,]*\d[\d\s:.,]*(?:{_DASH}[\d\s:.,]*)*$")
_VERSION_HINT_RE = re.compile(r"[A-Za-z][\w-]*")
_MAX_VERSION_WORDS = 6


def parse_verse_ranges(text: str | None) -> tuple[VerseRange, ...]:
    """Parse "5", "5-8" or "1,3-4" into verse ranges. Raises ParseFailure."""
    if not text or not text.strip():
        return ()
    ranges: list[VerseRange] = []
    for part in text.split(","):
        bounds = [b.strip() for b in re.split(_DASH, part.strip())]
        if not 1 <= len(bounds) <= 2 or not all(b.isdigit() for b in bounds):
            raise ParseFailure(f"bad verse range: {part!r}")
        start = int(bounds[0])
        end = int(bounds[-1])
        ranges.append(VerseRange(start, end))
    return tuple(ranges)


def _strip_wrappers(raw: str) -> tuple[str, str | None]:
    text = raw.strip()
    if text.startswith("[[") and text.endswith("]]"):
        text = text[2:-2].strip()
    book_type = None
    match = _PREFIX_RE.match(text)
    if match:
        if match.group("type"):
            book_type = match.group("type").lower()
        elif text[: match.end()].lower().startswith("bible:"):
            book_type = "bible"
        text = text[match.end() :].strip()
    return text, book_type


def _version_token(token: str, book_type: str) -> str:
    return catalog.canonical_version(token, book_type) or token


def _parse_citation(segment: str, book_type: str) -> list[Reference]:
    match = _CITATION_RE.match(segment.strip())
    if not match:
        raise ParseFailure(f"unrecognized citation: {segment!r}")

    book = catalog.canonical_book(match.group("book").strip(), book_type)
    if book is None:
        raise ParseFailure(f"unknown {book_type} book: {match.group('book').strip()!r}")

    chapter = match.group("chapter")
    if chapter is None:
        return [Reference(book=book)]

    verses = parse_verse_ranges(match.group("verses"))
    chapter_end = match.group("chapter_end")
    if chapter_end is None:
        return [Reference(book=book, chapter=int(chapter), verses=verses)]
    if verses:
        raise ParseFailure(f"verses after a chapter range: {segment!r}")
    first, last = sorted((int(chapter), int(chapter_end)))
    return [Reference(book=book, chapter=c) for c in range(first, last + 1)]


def _parse_with_version(segment: str, book_type: str) -> tuple[list[Reference], str | None]:
    """Parse one citation, peeling off a trailing version if present.

    Full edition names ("King James Version") are tried longest first, then a
    single unknown edition token is kept verbatim as a hint.
    """
    words = segment.split(" ")
    for size in range(min(len(words) - 1, _MAX_VERSION_WORDS), 0, -1):
        version = catalog.canonical_version(" ".join(words[-size:]), book_type)
        if version:
            return _parse_citation(" ".join(words[:-size]), book_type), version

    head, _, last = segment.rpartition(" ")
    try:
        return _parse_citation(segment, book_type), None
    except ParseFailure:
        if not head or not _VERSION_HINT_RE.fullmatch(last):
            raise
    return _parse_citation(head, book_type), last


def _split_citations(text: str) -> list[str]:
    segments: list[str] = []
    for chunk in text.split(";"):
        pieces = chunk.split(",")
        current = pieces[0]
        for piece in pieces[1:]:
            if _NEW_CITATION_RE.search(piece):
                segments.append(current)
                current = piece
            else:
                current = f"{current},{piece}"
        segments.append(current)
    return [" ".join(s.split()) for s in segments if s.strip()]


def parse_reference_list(text: str, book_type: str) -> tuple[list[Reference], list[str]]:
    """Parse every citation in ``text``. Unparsable entries are skipped.

    Returns the references and the version tokens found after citations.
    """
    references: list[Reference] = []
    versions: list[str] = []
    for segment in _split_citations(text):
        if references and _CARRY_OVER_RE.match(segment):
            segment = f"{references[-1].book} {segment}"
        try:
            refs, version = _parse_with_version(segment, book_type)
        except ParseFailure as e:
            logger.debug(f"Skipping citation: {e}")
            continue
        references.extend(refs)
        if version and version not in versions:
            versions.append(version)
    return references, versions


def parse(raw: str, book_type: str) -> ParsedQuery | None:
    """Parse a citation query. Returns None when nothing recognizable is found."""
    if not raw or not raw.strip():
        return None

    text, prefixed_type = _strip_wrappers(raw)
    book_type = prefixed_type or book_type
    if catalog.get_book_type(book_type) is None:
        logger.warning(f"Unknown book type: {book_type}")
        return None

    text, _, version_list = text.partition("|")
    versions = [_version_token(v, book_type) for v in re.split(r"[\s,]+", version_list) if v]

    references, trailing = parse_reference_list(text, book_type)
    if not references:
        return None

    for version in trailing:
        if version not in versions:
            versions.append(version)

    if not versions:
        return ParsedQuery(references=tuple(references), book_type=book_type)
    if len(versions) == 1:
        return ParsedQuery(references=tuple(references), version=versions[0], book_type=book_type)
    return ParsedQuery(references=tuple(references), versions=frozenset(versions), book_type=book_type)


def format_reference(reference: Reference, book_type: str = "bible") -> str:
    config = catalog.get_book_type(book_type)
    chapter_sep = config.chapter_separator if config else " "
    verse_sep = config.verse_separator if config else ":"

    formatted = reference.book
    if reference.chapter is not None:
        formatted += f"{chapter_sep}{reference.chapter}"
        if reference.verse:
            formatted += f"{verse_sep}{reference.verse}"
    return formatted


def record_title(record: ContentRecord) -> str:
    """Human-readable title for a passage record, e.g. "John 3:16 (King James Version)"."""
    book_type = (record.tag("type") or "bible").lower()
    config = catalog.get_book_type(book_type)
    chapter_sep = config.chapter_separator if config else " "
    verse_sep = config.verse_separator if config else ":"

    book = record.tag("book")
    title = (catalog.canonical_book(book, book_type) or book.replace("-", " ").title()) if book else "Book"
    chapter = record.tag("chapter")
    if chapter:
        title += f"{chapter_sep}{chapter}"
        verse = record.tag("verse")
        if verse:
            title += f"{verse_sep}{verse}"

    version = record.tag("version")
    if version:
        title += f" ({catalog.version_name(version, book_type)})"
    return title
