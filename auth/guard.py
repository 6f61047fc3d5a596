"""
auth/guard.py -- Role-based authorization table and self-action guards.

Every protected operation has one entry in AUTHORIZATION_TABLE. Routes name
the operation they perform (via auth.dependencies.require(operation)) and the
guard checks the caller's roles before any handler logic runs.

Rule fields:
  roles        -- any of these grants the operation outright.
  owner_roles  -- these grant the operation only on records the caller
                  created (checked by authorize_owner once the record is
                  loaded).
  forbid_self  -- the operation may not target the caller's own user record.
                  Violations raise Conflict (409), not Forbidden: the caller
                  has the role, the request itself is contradictory.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from auth.models import Role, User
from core.errors import Conflict, Forbidden, Unauthenticated

logger = logging.getLogger("bookshelf.auth.guard")


class Operation(str, Enum):
    LIST_USERS = "list_users"
    DELETE_USER = "delete_user"
    PATCH_USER_ROLES = "patch_user_roles"
    MINT_ACTUATOR_TOKEN = "mint_actuator_token"
    READ_ACTUATOR = "read_actuator"
    CREATE_BOOK = "create_book"
    UPDATE_BOOK = "update_book"
    DELETE_BOOK = "delete_book"


@dataclass(frozen=True)
class Rule:
    roles: frozenset[Role]
    owner_roles: frozenset[Role] = frozenset()
    forbid_self: bool = False
    self_message: str = ""


AUTHORIZATION_TABLE: dict[Operation, Rule] = {
    Operation.LIST_USERS: Rule(roles=frozenset({Role.ADMIN})),
    Operation.DELETE_USER: Rule(
        roles=frozenset({Role.ADMIN}),
        forbid_self=True,
        self_message="You cannot delete your own logged on user.",
    ),
    Operation.PATCH_USER_ROLES: Rule(
        roles=frozenset({Role.ADMIN}),
        forbid_self=True,
        self_message="You cannot change the roles of your own logged on user.",
    ),
    Operation.MINT_ACTUATOR_TOKEN: Rule(roles=frozenset({Role.ADMIN})),
    Operation.READ_ACTUATOR: Rule(roles=frozenset({Role.ADMIN, Role.ACTUATOR})),
    Operation.CREATE_BOOK: Rule(roles=frozenset({Role.ADMIN, Role.EDITOR})),
    Operation.UPDATE_BOOK: Rule(roles=frozenset({Role.ADMIN}), owner_roles=frozenset({Role.EDITOR})),
    Operation.DELETE_BOOK: Rule(roles=frozenset({Role.ADMIN}), owner_roles=frozenset({Role.EDITOR})),
}


def has_any_role(roles: Iterable[Role], *wanted: Role) -> bool:
    """Return True if the role collection contains at least one wanted role."""
    held = set(roles)
    return any(role in held for role in wanted)


class AuthorizationGuard:
    """Check callers against the authorization table.

    Usage:
        guard = AuthorizationGuard()
        guard.authorize(Operation.DELETE_USER, caller)
        guard.ensure_not_self(Operation.DELETE_USER, caller, target_id)
    """

    def __init__(self, table: dict[Operation, Rule] | None = None) -> None:
        self._table = dict(AUTHORIZATION_TABLE if table is None else table)

    def rule_for(self, operation: Operation) -> Rule:
        try:
            return self._table[operation]
        except KeyError:
            # An operation missing from the table is a wiring bug, never an open door.
            raise Forbidden(f"Operation {operation.value!r} is not permitted.") from None

    def authorize(self, operation: Operation, user: User | None) -> None:
        """Raise Unauthenticated if there is no caller, Forbidden if no role allows the operation.

        Owner-scoped roles pass here; the route must follow up with
        authorize_owner() once it knows who created the target record.
        """
        if user is None:
            raise Unauthenticated("Authentication required.")
        rule = self.rule_for(operation)
        if not has_any_role(user.roles, *(rule.roles | rule.owner_roles)):
            logger.info("User %s denied %s (roles=%s)", user.id, operation.value, sorted(r.value for r in user.roles))
            raise Forbidden("You do not have permission to perform this operation.")

    def authorize_owner(self, operation: Operation, user: User, owner_id: str | None) -> None:
        """Apply the ownership half of a rule to a loaded record."""
        rule = self.rule_for(operation)
        if has_any_role(user.roles, *rule.roles):
            return
        if owner_id is not None and owner_id == user.id and has_any_role(user.roles, *rule.owner_roles):
            return
        raise Forbidden("You can only change records you created.")

    def ensure_not_self(self, operation: Operation, user: User, target_id: str) -> None:
        """Raise Conflict when a forbid_self operation targets the caller."""
        rule = self.rule_for(operation)
        if rule.forbid_self and user.id == target_id:
            logger.warning(
                "User %s on %s attempted %s on themselves. This isn't allowed",
                user.full_name,
                user.auth_provider,
                operation.value,
            )
            raise Conflict(rule.self_message)
