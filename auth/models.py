"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in catalog/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, core/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    USER = "ROLE_USER"
    EDITOR = "ROLE_EDITOR"
    ADMIN = "ROLE_ADMIN"
    ACTUATOR = "ROLE_ACTUATOR"  # service principal for monitoring tools


def _default_roles() -> set[Role]:
    return {Role.USER}


@dataclass
class User:
    """An identity known to Bookshelf.

    Users are created on their first successful external login. auth_provider
    plus auth_id (the provider's stable subject) identify the external account;
    id is the application identifier embedded in session tokens.

    id is None before the record is written to the database.
    """

    full_name: str
    auth_provider: str  # "github", "google", "local"
    auth_id: str  # provider's stable user ID
    email: str = ""
    picture: str = ""
    roles: set[Role] = field(default_factory=_default_roles)
    id: str | None = None
    first_logon: str = ""  # ISO 8601, set by store on insert
    last_logon: str = ""  # ISO 8601


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    user_id: str
    full_name: str
    auth_provider: str
    roles: frozenset[Role]
    issued_at: int  # epoch seconds
    expires_at: int  # epoch seconds


@dataclass(frozen=True)
class OAuthProfile:
    """Provider-independent view of an external login."""

    provider: str
    subject: str
    email: str
    full_name: str
    picture: str = ""
