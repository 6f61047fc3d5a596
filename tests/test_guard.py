"""Unit tests for auth/guard.py -- the authorization table.

Covers:
- admin-only operations allow ADMIN and reject EDITOR / USER with Forbidden
- missing principal raises Unauthenticated
- owner-scoped book operations: editors pass for their own records only
- self-targeting delete / role patch raises Conflict with a specific message
"""

from __future__ import annotations

import pytest

from auth.guard import AUTHORIZATION_TABLE, AuthorizationGuard, Operation, Rule, has_any_role
from auth.models import Role, User
from core.errors import Conflict, Forbidden, Unauthenticated


def _user(user_id: str, *roles: Role) -> User:
    return User(id=user_id, full_name=user_id, auth_provider="google", auth_id=user_id, roles={Role.USER, *roles})


ADMIN = _user("admin", Role.ADMIN)
EDITOR = _user("editor", Role.EDITOR)
READER = _user("reader")
ACTUATOR = User(id="svc", full_name="svc", auth_provider="local", auth_id="actuator", roles={Role.ACTUATOR})


@pytest.fixture
def guard() -> AuthorizationGuard:
    return AuthorizationGuard()


def test_every_operation_has_a_rule() -> None:
    assert set(AUTHORIZATION_TABLE) == set(Operation)


def test_has_any_role() -> None:
    assert has_any_role({Role.EDITOR}, Role.ADMIN, Role.EDITOR)
    assert not has_any_role({Role.USER}, Role.ADMIN, Role.EDITOR)
    assert not has_any_role(set(), Role.USER)


class TestAuthorize:
    @pytest.mark.parametrize(
        "operation",
        [Operation.LIST_USERS, Operation.DELETE_USER, Operation.PATCH_USER_ROLES, Operation.MINT_ACTUATOR_TOKEN],
    )
    def test_admin_only_operations(self, guard: AuthorizationGuard, operation: Operation) -> None:
        guard.authorize(operation, ADMIN)
        for caller in (EDITOR, READER, ACTUATOR):
            with pytest.raises(Forbidden):
                guard.authorize(operation, caller)

    def test_missing_principal(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Unauthenticated):
            guard.authorize(Operation.LIST_USERS, None)

    def test_create_book_allows_editor_and_admin(self, guard: AuthorizationGuard) -> None:
        guard.authorize(Operation.CREATE_BOOK, ADMIN)
        guard.authorize(Operation.CREATE_BOOK, EDITOR)
        with pytest.raises(Forbidden):
            guard.authorize(Operation.CREATE_BOOK, READER)

    def test_actuator_info_allows_service_principal(self, guard: AuthorizationGuard) -> None:
        guard.authorize(Operation.READ_ACTUATOR, ACTUATOR)
        guard.authorize(Operation.READ_ACTUATOR, ADMIN)
        with pytest.raises(Forbidden):
            guard.authorize(Operation.READ_ACTUATOR, EDITOR)

    def test_operation_missing_from_table_is_forbidden(self) -> None:
        guard = AuthorizationGuard({Operation.LIST_USERS: Rule(roles=frozenset({Role.ADMIN}))})
        with pytest.raises(Forbidden):
            guard.authorize(Operation.DELETE_USER, ADMIN)


class TestAuthorizeOwner:
    def test_editor_owns_record(self, guard: AuthorizationGuard) -> None:
        guard.authorize(Operation.UPDATE_BOOK, EDITOR)
        guard.authorize_owner(Operation.UPDATE_BOOK, EDITOR, "editor")

    def test_editor_does_not_own_record(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Forbidden):
            guard.authorize_owner(Operation.DELETE_BOOK, EDITOR, "admin")

    def test_admin_needs_no_ownership(self, guard: AuthorizationGuard) -> None:
        guard.authorize_owner(Operation.DELETE_BOOK, ADMIN, "editor")

    def test_reader_rejected_before_ownership(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Forbidden):
            guard.authorize(Operation.UPDATE_BOOK, READER)
        with pytest.raises(Forbidden):
            guard.authorize_owner(Operation.UPDATE_BOOK, READER, "reader")


class TestEnsureNotSelf:
    def test_self_delete_conflicts(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Conflict) as exc_info:
            guard.ensure_not_self(Operation.DELETE_USER, ADMIN, "admin")
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == {"code": "conflict", "message": "You cannot delete your own logged on user."}

    def test_self_role_patch_conflicts(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Conflict):
            guard.ensure_not_self(Operation.PATCH_USER_ROLES, ADMIN, "admin")

    def test_other_target_allowed(self, guard: AuthorizationGuard) -> None:
        guard.ensure_not_self(Operation.DELETE_USER, ADMIN, "editor")
        guard.ensure_not_self(Operation.PATCH_USER_ROLES, ADMIN, "editor")

    def test_operations_without_self_rule_ignore_target(self, guard: AuthorizationGuard) -> None:
        guard.ensure_not_self(Operation.LIST_USERS, ADMIN, "admin")
