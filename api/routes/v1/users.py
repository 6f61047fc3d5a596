"""
api/routes/v1/users.py -- Current-principal and user management endpoints.

Mounted under /secure/api by api/main.py.

Routes:
  GET    /secure/api/user                -- current principal (requires auth)
  GET    /secure/api/users               -- list all users (LIST_USERS)
  GET    /secure/api/users/actuator      -- mint a service token (MINT_ACTUATOR_TOKEN)
  DELETE /secure/api/users/{user_id}     -- delete a user (DELETE_USER, not self)
  PATCH  /secure/api/users/{user_id}     -- replace a user's roles (PATCH_USER_ROLES, not self)
  POST   /secure/api/logout              -- expire session, XSRF and legacy cookies

Authorization happens in the require(...) dependency before the handler body
runs. Self-targeting checks run next, before any store call, so a rejected
request never mutates anything.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from api.models import RolesPatch, UserResponse
from auth.dependencies import get_current_user, require
from auth.guard import AuthorizationGuard, Operation
from auth.models import Role, User
from auth.service import ensure_actuator_user, is_actuator_user
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.errors import Conflict, NotFound

logger = logging.getLogger("bookshelf.api.users")

router = APIRouter()


@router.get("/user", response_model=UserResponse)
def get_principal(user: User = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated principal.

    A valid token for a deleted user gets a 401 that also expires the session
    cookie (see auth.dependencies.get_current_user).
    """
    logger.debug("Principal for /user is %s", user.id)
    return UserResponse.from_user(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(require(Operation.LIST_USERS)),
) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


# Registered before the /users/{user_id} routes so "actuator" is never read as an id.
@router.get("/users/actuator", response_class=PlainTextResponse)
def actuator_token(
    request: Request,
    current_user: User = Depends(require(Operation.MINT_ACTUATOR_TOKEN)),
) -> PlainTextResponse:
    """Create or refresh the actuator service user and return a token for it.

    The token is returned as plain text so it can be pasted straight into a
    monitoring tool's Authorization: Bearer header.
    """
    user_store: UserStore = request.app.state.user_store
    codec: TokenCodec = request.app.state.tokens
    actuator = ensure_actuator_user(user_store)
    token = codec.issue(actuator, expire_seconds=request.app.state.settings.actuator_token_expire_seconds)
    logger.info("User %s minted an actuator token", current_user.id)
    resp = PlainTextResponse(token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/users/{user_id}")
def delete_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require(Operation.DELETE_USER)),
) -> Response:
    guard: AuthorizationGuard = request.app.state.guard
    guard.ensure_not_self(Operation.DELETE_USER, current_user, user_id)

    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise NotFound("User not found.")
    logger.info("User %s deleted user %s", current_user.id, user_id)
    return Response(status_code=200)


def role_patch_target(
    request: Request,
    user_id: str,
    current_user: User = Depends(require(Operation.PATCH_USER_ROLES)),
) -> User:
    """Load the user a role patch applies to, refusing targets whose roles are fixed.

    FastAPI solves dependencies before it validates the request body, so a
    self-patch is a 409 whatever the body contains.
    """
    guard: AuthorizationGuard = request.app.state.guard
    guard.ensure_not_self(Operation.PATCH_USER_ROLES, current_user, user_id)

    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        raise NotFound("User not found.")
    if is_actuator_user(target):
        # Its monitoring token would pick up whatever roles are stored here.
        logger.warning("User %s tried to change the roles of the actuator user", current_user.id)
        raise Conflict("The roles of the actuator service user cannot be changed.")
    return target


@router.patch("/users/{user_id}", response_model=UserResponse)
def patch_user_roles(
    request: Request,
    body: RolesPatch,
    target: User = Depends(role_patch_target),
) -> UserResponse:
    """Replace the target user's roles. ROLE_USER is always retained."""
    logger.debug("Received role patch for %s: %s", target.id, body.roles)
    user_store: UserStore = request.app.state.user_store
    roles = set(body.roles) | {Role.USER}
    if not user_store.update_roles(target.id, roles):
        raise NotFound("User not found.")
    updated = user_store.get_by_id(target.id)
    if updated is None:
        raise NotFound("User not found.")
    return UserResponse.from_user(updated)


@router.post("/logout", status_code=204)
def logout(request: Request) -> Response:
    """Expire the session, XSRF and legacy session cookies.

    Needs no prior authentication: clearing cookies is always safe, and a
    client with a broken session must still be able to log out.
    """
    resp = Response(status_code=204)
    request.app.state.sessions.end_session(resp)
    return resp
