from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from library_api.api.deps import PageParams, page_params
from library_api.api.rate_limit import rate_limiter
from library_api.crud.books import create_book, get_book, list_books, update_book
from library_api.db.session import get_db
from library_api.domain.errors import BookNotFoundError
from library_api.schemas.books import (
    BookCreateIn,
    BookListOut,
    BookOut,
    BookPatch,
    BookUpdateIn,
    HistoryEntryOut,
    HistoryListOut,
    PageOut,
)
from library_api.services.checkout import checkout_book, find_history_by_book_id, return_book
from sqlalchemy.orm import Session

router = APIRouter(
    prefix="/v1/books",
    tags=["books"],
    dependencies=[Depends(rate_limiter("books"))],
)


@router.post("", response_model=BookOut, status_code=201)
def create(payload: BookCreateIn, db: Session = Depends(get_db)):
    return create_book(db, **payload.model_dump())


@router.get("", response_model=BookListOut)
def list_all(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    result = list_books(db, limit=params.limit, offset=params.offset)
    return BookListOut(
        data=[BookOut.model_validate(b) for b in result.items],
        pagination=PageOut(page=params.page, limit=params.limit, total=result.total),
    )


@router.get("/{book_id}", response_model=BookOut)
def get_one(book_id: UUID, db: Session = Depends(get_db)):
    book = get_book(db, str(book_id))
    if book is None:
        raise BookNotFoundError()
    return book


@router.patch("/{book_id}", response_model=BookOut)
def update(book_id: UUID, payload: BookUpdateIn, db: Session = Depends(get_db)):
    patch = BookPatch(**payload.model_dump(exclude_unset=True))
    book = update_book(db, str(book_id), patch)
    if book is None:
        raise BookNotFoundError()
    return book


@router.get("/{book_id}/history", response_model=HistoryListOut)
def history(
    book_id: UUID,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    result = find_history_by_book_id(db, str(book_id), limit=params.limit, offset=params.offset)
    return HistoryListOut(
        data=[HistoryEntryOut.model_validate(e) for e in result.items],
        pagination=PageOut(page=params.page, limit=params.limit, total=result.total),
    )


@router.post("/{book_id}/checkout", response_model=BookOut)
def checkout(book_id: UUID, db: Session = Depends(get_db)):
    return checkout_book(db, str(book_id))


@router.post("/{book_id}/return", response_model=BookOut)
def return_(book_id: UUID, db: Session = Depends(get_db)):
    return return_book(db, str(book_id))
