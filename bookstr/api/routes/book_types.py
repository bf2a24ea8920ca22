from __future__ import annotations

from fastapi import APIRouter

from bookstr.books import catalog
from bookstr.config import settings
from bookstr.models.schemas import BookTypeInfo, BookTypesResponse

router = APIRouter(prefix="/api/book-types", tags=["book-types"])


@router.get("", response_model=BookTypesResponse)
async def list_book_types():
    """List the book types citations can be resolved against."""
    infos = []
    for name in catalog.book_type_names():
        book_type = catalog.get_book_type(name)
        infos.append(
            BookTypeInfo(
                name=book_type.name,
                display_name=book_type.display_name,
                books=len(book_type.books),
                versions=book_type.versions,
            )
        )
    return BookTypesResponse(book_types=infos, default=settings.default_book_type)
