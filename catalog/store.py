"""
catalog/store.py -- SQLAlchemy-backed persistence layer for the Bookshelf catalogue.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in catalog/models.py
remain the authoritative domain representation. Swapping SQLite for PostgreSQL
is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. BookStore is the repository; _row_to_book
is the mapper. Route handlers never touch SQL directly.

The store always holds the full creator snapshot. Redaction for viewers
happens per response in catalog/visibility.py and is never written back.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = BookStore()                               # SQLite default
    store = BookStore("postgresql://user:pw@host/db") # PostgreSQL
    book_id = store.create_book(book)
    page = store.list_books(page=0, size=10, author="Dr Seuss")
    store.close()
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from catalog.models import Book, BookPage, Owner

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'bookshelf_catalog.db'}"

# Fields a caller may change through update_book(). created_by and the
# timestamps are owned by the store.
_UPDATABLE_FIELDS = frozenset({"title", "author", "genre", "summary", "rating"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_books = Table(
    "books",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("author", String(255), nullable=False, index=True),
    Column("genre", String(100), nullable=False, server_default=""),
    Column("summary", Text),
    Column("rating", String(20), nullable=False, server_default=""),
    Column("created_by_id", String(32), nullable=False),
    Column("created_by_name", String(255), nullable=False, server_default=""),
    Column("created_by_email", String(255), nullable=False, server_default=""),
    Column("created_by_provider", String(30), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class BookStore:
    """Repository for Book entities."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_book(self, book: Book) -> str:
        """Insert a new book and return its generated id."""
        book_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _books.insert().values(
                    id=book_id,
                    title=book.title,
                    author=book.author,
                    genre=book.genre,
                    summary=book.summary,
                    rating=book.rating,
                    created_by_id=book.created_by.user_id,
                    created_by_name=book.created_by.full_name,
                    created_by_email=book.created_by.email,
                    created_by_provider=book.created_by.auth_provider,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return book_id

    def get_by_id(self, book_id: str) -> Optional[Book]:
        """Return the book or None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_books.select().where(_books.c.id == book_id)).fetchone()
        return _row_to_book(row) if row is not None else None

    def count_books(self, author: Optional[str] = None) -> int:
        query = select(func.count()).select_from(_books)
        if author is not None:
            query = query.where(_books.c.author == author)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def list_books(self, page: int = 0, size: int = 10, author: Optional[str] = None) -> BookPage:
        """Return one page of books, newest first.

        author filters by exact author name (the catalogue's "find by author").
        page is zero-based.
        """
        query = _books.select()
        if author is not None:
            query = query.where(_books.c.author == author)
        query = query.order_by(_books.c.created_at.desc(), _books.c.id).limit(size).offset(page * size)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return BookPage(
            content=[_row_to_book(r) for r in rows],
            page=page,
            size=size,
            total_elements=self.count_books(author),
        )

    def update_book(self, book_id: str, **fields) -> bool:
        """Update mutable fields on an existing book.

        Accepted fields: title, author, genre, summary, rating. Unknown fields
        raise ValueError rather than being silently ignored.

        Returns True if a row was updated, False if book_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown book fields: {sorted(unknown)!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _books.update().where(_books.c.id == book_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_book(self, book_id: str) -> bool:
        """Delete a book. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_books.delete().where(_books.c.id == book_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_book(row) -> Book:
    return Book(
        id=row.id,
        title=row.title,
        author=row.author,
        genre=row.genre or "",
        summary=row.summary or "",
        rating=row.rating or "",
        created_by=Owner(
            user_id=row.created_by_id,
            full_name=row.created_by_name or "",
            email=row.created_by_email or "",
            auth_provider=row.created_by_provider or "",
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
