"""
API request and response models for Bookshelf REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Field names are camelCase on the wire (fullName, createdBy, ...) via an alias
generator; Python code uses snake_case.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Role, User
from catalog.models import Book, BookPage, Owner

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RatingEnum(str, Enum):
    terrible = "terrible"
    poor = "poor"
    ok = "ok"
    good = "good"
    great = "great"


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ActuatorInfoResponse(BaseModel):
    """Response for GET /actuator/info."""

    model_config = _WIRE_CONFIG

    version: str
    users: int
    books: int


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = _WIRE_CONFIG

    id: str
    full_name: str
    email: str
    auth_provider: str
    picture: str = ""
    roles: list[Role]
    first_logon: str = ""
    last_logon: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            full_name=user.full_name,
            email=user.email,
            auth_provider=user.auth_provider,
            picture=user.picture,
            roles=sorted(user.roles, key=lambda r: r.value),
            first_logon=user.first_logon,
            last_logon=user.last_logon,
        )


class RolesPatch(BaseModel):
    """Request body for PATCH /secure/api/users/{id}.

    The supplied list replaces the user's roles. ROLE_USER is always kept.
    """

    roles: list[Role] = Field(max_length=len(Role))


class OAuthProviderInfo(BaseModel):
    """One entry in the GET /api/login/providers response."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


class BookCreate(BaseModel):
    """Request body for POST /secure/api/books."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    genre: str = Field(default="", max_length=100)
    summary: str = Field(default="", max_length=10000)
    rating: Optional[RatingEnum] = None


class BookUpdate(BaseModel):
    """Request body for PUT /secure/api/books/{id}. Omitted fields are left unchanged.

    rating "" clears an existing rating.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    author: Optional[str] = Field(default=None, min_length=1, max_length=255)
    genre: Optional[str] = Field(default=None, max_length=100)
    summary: Optional[str] = Field(default=None, max_length=10000)
    rating: Optional[Union[RatingEnum, Literal[""]]] = None


class OwnerResponse(BaseModel):
    model_config = _WIRE_CONFIG

    user_id: str
    full_name: str
    email: str
    auth_provider: str

    @classmethod
    def from_owner(cls, owner: Owner) -> "OwnerResponse":
        return cls(
            user_id=owner.user_id,
            full_name=owner.full_name,
            email=owner.email,
            auth_provider=owner.auth_provider,
        )


class BookResponse(BaseModel):
    """A book as shown to one viewer. Build it from an already-redacted Book."""

    model_config = _WIRE_CONFIG

    id: str
    title: str
    author: str
    genre: str
    summary: str
    rating: str
    created_by: OwnerResponse
    created_at: str
    updated_at: str

    @classmethod
    def from_book(cls, book: Book) -> "BookResponse":
        return cls(
            id=book.id,
            title=book.title,
            author=book.author,
            genre=book.genre,
            summary=book.summary,
            rating=book.rating,
            created_by=OwnerResponse.from_owner(book.created_by),
            created_at=book.created_at,
            updated_at=book.updated_at,
        )


class BookPageResponse(BaseModel):
    model_config = _WIRE_CONFIG

    content: list[BookResponse]
    page: int
    size: int
    total_elements: int
    total_pages: int

    @classmethod
    def from_page(cls, page: BookPage) -> "BookPageResponse":
        total_pages = -(-page.total_elements // page.size) if page.size else 0
        return cls(
            content=[BookResponse.from_book(b) for b in page.content],
            page=page.page,
            size=page.size,
            total_elements=page.total_elements,
            total_pages=total_pages,
        )
