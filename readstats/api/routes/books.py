from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ...models import Book
from ...service import StatsService
from ..deps import get_service
from ..schemas import BookIn, BookOut

router = APIRouter(prefix="/api/v1", tags=["books"])


def _book_out(book: Book) -> BookOut:
    data = vars(book).copy()
    data["tags"] = list(book.tags)
    return BookOut(**data)


@router.get("/books", response_model=list[BookOut])
def list_books(service: StatsService = Depends(get_service)) -> list[BookOut]:
    return [_book_out(book) for book in service.db.list_books(service.user_id)]


@router.put("/books/{book_id}", response_model=BookOut)
def save_book(book_id: str, payload: BookIn, service: StatsService = Depends(get_service)) -> BookOut:
    try:
        book = service.save_book({**payload.model_dump(exclude_none=True), "id": book_id})
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _book_out(book)
