"""
api/routes/v1/books.py -- Catalogue endpoints.

Routes:
  GET    /api/books                   -- paged list, optional ?author= filter (public)
  GET    /api/books/{book_id}         -- one book (public)
  POST   /secure/api/books            -- create (CREATE_BOOK); 201 + Location
  PUT    /secure/api/books/{book_id}  -- update (UPDATE_BOOK; editors only their own)
  DELETE /secure/api/books/{book_id}  -- delete (DELETE_BOOK; editors only their own)

Public reads still look for a session: the viewer's roles decide which creator
fields survive catalog.visibility. Anonymous viewers and stale sessions are
treated as having no roles.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import BookCreate, BookPageResponse, BookResponse, BookUpdate
from auth.dependencies import require, try_get_current_user
from auth.guard import AuthorizationGuard, Operation
from auth.models import Role, User
from catalog.models import Book, Owner
from catalog.store import BookStore
from catalog.visibility import redact_book, redact_page
from core.errors import NotFound

logger = logging.getLogger("bookshelf.api.books")

router = APIRouter()

_MAX_PAGE_SIZE = 50


def _viewer_roles(viewer: Optional[User]) -> set[Role]:
    return set(viewer.roles) if viewer is not None else set()


def _load_book(store: BookStore, book_id: str) -> Book:
    book = store.get_by_id(book_id)
    if book is None:
        raise NotFound("Book not found.")
    return book


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------


@router.get("/api/books", response_model=BookPageResponse)
def list_books(
    request: Request,
    author: Optional[str] = Query(default=None, max_length=255),
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=_MAX_PAGE_SIZE),
    viewer: Optional[User] = Depends(try_get_current_user),
) -> BookPageResponse:
    store: BookStore = request.app.state.book_store
    result = store.list_books(page=page, size=size, author=author)
    return BookPageResponse.from_page(redact_page(result, _viewer_roles(viewer)))


@router.get("/api/books/{book_id}", response_model=BookResponse)
def get_book(
    request: Request,
    book_id: str,
    viewer: Optional[User] = Depends(try_get_current_user),
) -> BookResponse:
    store: BookStore = request.app.state.book_store
    book = _load_book(store, book_id)
    return BookResponse.from_book(redact_book(book, _viewer_roles(viewer)))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("/secure/api/books", response_model=BookResponse, status_code=201)
def create_book(
    request: Request,
    response: Response,
    body: BookCreate,
    current_user: User = Depends(require(Operation.CREATE_BOOK)),
) -> BookResponse:
    store: BookStore = request.app.state.book_store
    book = Book(
        title=body.title,
        author=body.author,
        genre=body.genre,
        summary=body.summary,
        rating=body.rating.value if body.rating else "",
        created_by=Owner(
            user_id=current_user.id,
            full_name=current_user.full_name,
            email=current_user.email,
            auth_provider=current_user.auth_provider,
        ),
    )
    book_id = store.create_book(book)
    logger.info("User %s created book %s", current_user.id, book_id)

    response.headers["Location"] = f"/api/books/{book_id}"
    created = _load_book(store, book_id)
    return BookResponse.from_book(redact_book(created, current_user.roles))


@router.put("/secure/api/books/{book_id}", response_model=BookResponse)
def update_book(
    request: Request,
    book_id: str,
    body: BookUpdate,
    current_user: User = Depends(require(Operation.UPDATE_BOOK)),
) -> BookResponse:
    store: BookStore = request.app.state.book_store
    guard: AuthorizationGuard = request.app.state.guard
    book = _load_book(store, book_id)
    guard.authorize_owner(Operation.UPDATE_BOOK, current_user, book.created_by.user_id)

    updates = body.model_dump(exclude_none=True, mode="json")
    if updates:
        store.update_book(book_id, **updates)
    updated = _load_book(store, book_id)
    return BookResponse.from_book(redact_book(updated, current_user.roles))


@router.delete("/secure/api/books/{book_id}", status_code=204)
def delete_book(
    request: Request,
    book_id: str,
    current_user: User = Depends(require(Operation.DELETE_BOOK)),
) -> Response:
    store: BookStore = request.app.state.book_store
    guard: AuthorizationGuard = request.app.state.guard
    book = _load_book(store, book_id)
    guard.authorize_owner(Operation.DELETE_BOOK, current_user, book.created_by.user_id)

    store.delete_book(book_id)
    logger.info("User %s deleted book %s", current_user.id, book_id)
    return Response(status_code=204)
