from __future__ import annotations

from typing import Iterable

from bookstr.config import settings
from bookstr.models.records import FilterDescriptor, Reference, tag_slug


def compile_filters(
    references: Iterable[Reference],
    book_type: str,
    version: str | None = None,
    versions: Iterable[str] | None = None,
) -> list[FilterDescriptor]:
    """Build one coarse filter per reference and requested version.

    Filters stop at the chapter. Verse selection is left to the match validator
    since sources cannot be trusted to evaluate verse ranges.
    """
    wanted_versions = sorted({v.lower() for v in versions or ()})
    if not wanted_versions and version:
        wanted_versions = [version.lower()]

    kinds = tuple(settings.book_kinds)
    filters: list[FilterDescriptor] = []
    seen: set[FilterDescriptor] = set()

    for reference in references:
        base: list[tuple[str, tuple[str, ...]]] = [
            ("type", (book_type.lower(),)),
            ("book", (tag_slug(reference.book),)),
        ]
        if reference.chapter is not None:
            base.append(("chapter", (str(reference.chapter),)))

        for wanted in wanted_versions or [None]:
            tags = list(base)
            if wanted:
                tags.append(("version", (wanted,)))
            descriptor = FilterDescriptor(kinds=kinds, tags=tuple(tags))
            if descriptor in seen:
                continue
            seen.add(descriptor)
            filters.append(descriptor)

    return filters


def describe_filter(descriptor: FilterDescriptor) -> str:
    """Render a filter as a "type:bible book:john chapter:3" search string."""
    parts = [f"{name}:{','.join(values)}" for name, values in descriptor.tags]
    return " ".join(parts)
