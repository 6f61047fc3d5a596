"""
catalog/models.py -- Domain dataclasses for the Bookshelf catalogue.

These are pure data containers with zero logic. Persistence lives in
catalog/store.py; what a given viewer may see lives in catalog/visibility.py.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Owner:
    """Snapshot of the user who created a record.

    Stored with the book rather than joined from the users table, so a book
    keeps its creator details after the user is deleted. email and full_name
    are redacted per viewer before leaving the API.
    """

    user_id: str
    full_name: str = ""
    email: str = ""
    auth_provider: str = ""


@dataclass
class Book:
    """A catalogue entry.

    rating is one of "terrible" | "poor" | "ok" | "good" | "great", or "" when
    the reviewer has not rated the book.

    id is None before the record is written to the database.
    """

    title: str
    author: str
    created_by: Owner
    genre: str = ""
    summary: str = ""
    rating: str = ""
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, set by store on every write


@dataclass
class BookPage:
    """One page of a book listing."""

    content: list[Book] = field(default_factory=list)
    page: int = 0
    size: int = 10
    total_elements: int = 0
