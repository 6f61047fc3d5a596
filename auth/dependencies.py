"""
auth/dependencies.py -- Principal resolution and FastAPI Depends() helpers.

Two identity assertions are checked in priority order:
  1. Session cookie (SESSION_COOKIE_NAME) -- set by the OAuth login flow.
  2. Authorization: Bearer <token> header -- service principals holding an
     actuator token, and API clients.

Both carry the same signed token and converge on a User via PrincipalResolver.

try_get_current_user() is the soft variant (returns None on failure); public
  routes use it to learn the viewer's roles.
get_current_user() raises 401 if unauthenticated. A valid token naming a
  deleted user is a stale session: the 401 also expires the session cookie.
require(operation) wraps get_current_user() and checks the authorization table.

Components are read from app.state, where api/main.py:wire_components() put
them. Nothing here is a module-level singleton.

Layer rule: no imports from api/ or catalog/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request

from auth.guard import AuthorizationGuard, Operation
from auth.models import User
from auth.session import SessionManager
from auth.store import UserStore
from auth.tokens import TokenCodec, TokenInvalid
from core.errors import Unauthenticated

logger = logging.getLogger("bookshelf.auth")

_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class PrincipalResolver:
    """Turn a session token into the stored User it names.

    resolve() distinguishes three outcomes:
      - TokenInvalid raised   -> no usable session at all
      - None returned         -> token is genuine but the user was deleted (stale)
      - User returned         -> authenticated
    """

    def __init__(self, codec: TokenCodec, user_store: UserStore) -> None:
        self._codec = codec
        self._user_store = user_store

    def resolve(self, token: str, require_fresh: bool = False) -> User | None:
        """Verify the token and load its user from the store.

        require_fresh is reserved for a stricter reload mode and is accepted
        for interface compatibility; every call already reads the store.
        """
        claims = self._codec.verify(token)
        return self._user_store.get_by_id(claims.user_id)


def _extract_token(request: Request) -> tuple[str | None, bool]:
    """Return (token, from_cookie) for the request."""
    sessions: SessionManager = request.app.state.sessions
    token = request.cookies.get(sessions.cookie_name)
    if token:
        return token, True
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None, False
    return None, False


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request. Returns None on any failure, never raises."""
    token, _from_cookie = _extract_token(request)
    if not token:
        return None
    resolver: PrincipalResolver = request.app.state.resolver
    try:
        return resolver.resolve(token)
    except TokenInvalid:
        return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    token, from_cookie = _extract_token(request)
    if not token:
        raise Unauthenticated("No user data available - if you haven't authenticated then this is expected.")

    resolver: PrincipalResolver = request.app.state.resolver
    try:
        user = resolver.resolve(token)
    except TokenInvalid as exc:
        logger.debug("Rejected session token: %s", exc)
        raise Unauthenticated("Session token is invalid or has expired.") from exc

    if user is None:
        # A valid token for a user removed from the store. Expire the cookie
        # so the client's next request carries no token.
        logger.warning("No user found for a valid session token - assuming an old token for a removed user")
        raise Unauthenticated("No user found in user store for the supplied session.", expire_session=True)

    if from_cookie and request.method not in _SAFE_METHODS:
        request.app.state.sessions.verify_xsrf(request)
    return user


def require(operation: Operation) -> Callable[[Request], User]:
    """Build a dependency that authenticates the caller and authorizes the operation.

    Use as a FastAPI dependency:
        @router.delete("/users/{user_id}")
        async def route(user: User = Depends(require(Operation.DELETE_USER))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        guard: AuthorizationGuard = request.app.state.guard
        guard.authorize(operation, user)
        return user

    dependency.__name__ = f"require_{operation.value}"
    return dependency
