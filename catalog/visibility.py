"""
catalog/visibility.py -- Per-viewer redaction of creator details.

Who may see what about a book's creator:

  createdBy.email     -- ROLE_ADMIN only
  createdBy.fullName  -- ROLE_ADMIN or ROLE_EDITOR

Everything else on a book is public. Hidden fields become "" rather than
disappearing so clients can rely on a stable response shape.

All functions return copies. The stored record is never modified, so the
same Book can be rendered for an admin and an anonymous viewer in turn.
Anonymous viewers are passed an empty role set.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from auth.guard import has_any_role
from auth.models import Role
from catalog.models import Book, BookPage, Owner


def visible_owner(owner: Owner, viewer_roles: Iterable[Role]) -> Owner:
    """Return the creator snapshot with fields the viewer may not see blanked."""
    roles = set(viewer_roles)
    return replace(
        owner,
        email=owner.email if Role.ADMIN in roles else "",
        full_name=owner.full_name if has_any_role(roles, Role.ADMIN, Role.EDITOR) else "",
    )


def redact_book(book: Book, viewer_roles: Iterable[Role]) -> Book:
    return replace(book, created_by=visible_owner(book.created_by, viewer_roles))


def redact_page(page: BookPage, viewer_roles: Iterable[Role]) -> BookPage:
    roles = set(viewer_roles)
    return replace(page, content=[redact_book(b, roles) for b in page.content])
