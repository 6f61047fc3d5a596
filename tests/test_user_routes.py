"""
tests/test_user_routes.py -- Integration tests for /secure/api user endpoints.

Coverage:
  - GET /secure/api/user with Bearer header and with the session cookie
  - Missing and garbage tokens -> 401
  - Stale session (valid token, user deleted) -> 401 and the session cookie is expired
  - LIST_USERS / DELETE_USER / PATCH_USER_ROLES are admin-only
  - Self-delete and self role-patch -> 409 with nothing changed
  - Unknown target ids -> 404
  - Actuator token minting and its use on /actuator/info

Cookie-authenticated requests pass an explicit Cookie header rather than
using the TestClient jar, so no session leaks between tests in the module.
"""

from __future__ import annotations

from auth.models import Role


def _set_cookie_headers(resp) -> list[str]:
    return [h.lower() for h in resp.headers.get_list("set-cookie")]


class TestCurrentPrincipal:
    def test_bearer_token(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/user", headers=api_client.editor.headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == api_client.editor.user.id
        assert data["fullName"] == "Ed Editor"
        assert data["authProvider"] == "google"
        assert data["roles"] == ["ROLE_EDITOR", "ROLE_USER"]

    def test_session_cookie(self, api_client) -> None:
        resp = api_client.client.get(
            "/secure/api/user",
            headers={"Cookie": f"books_session={api_client.reader.token}"},
        )
        assert resp.status_code == 200
        assert resp.json()["fullName"] == "Rita Reader"

    def test_no_token_is_401(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/user")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_garbage_token_is_401(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/user", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        # An unreadable token is not a stale session; nothing to expire.
        assert not any(h.startswith("books_session=") for h in _set_cookie_headers(resp))

    def test_stale_session_expires_cookie(self, api_client) -> None:
        gone = api_client.add_user("Gone Soon", {Role.USER})
        assert api_client.user_store.delete_user(gone.user.id)

        resp = api_client.client.get(
            "/secure/api/user",
            headers={"Cookie": f"books_session={gone.token}"},
        )
        assert resp.status_code == 401
        cookies = _set_cookie_headers(resp)
        expired = [h for h in cookies if h.startswith("books_session=")]
        assert expired, cookies
        assert "max-age=0" in expired[0]


class TestListUsers:
    def test_admin_lists_users(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/users", headers=api_client.admin.headers)
        assert resp.status_code == 200
        names = {u["fullName"] for u in resp.json()}
        assert {"Ann Admin", "Ed Editor", "Rita Reader"} <= names

    def test_editor_forbidden(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/users", headers=api_client.editor.headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_anonymous_unauthorized(self, api_client) -> None:
        assert api_client.client.get("/secure/api/users").status_code == 401


class TestDeleteUser:
    def test_admin_deletes_other_user(self, api_client) -> None:
        target = api_client.add_user("Del Target", {Role.USER})
        resp = api_client.client.delete(f"/secure/api/users/{target.user.id}", headers=api_client.admin.headers)
        assert resp.status_code == 200
        assert api_client.user_store.get_by_id(target.user.id) is None

    def test_self_delete_conflicts(self, api_client) -> None:
        admin_id = api_client.admin.user.id
        resp = api_client.client.delete(f"/secure/api/users/{admin_id}", headers=api_client.admin.headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == {
            "code": "conflict",
            "message": "You cannot delete your own logged on user.",
        }
        assert api_client.user_store.get_by_id(admin_id) is not None

    def test_unknown_user_404(self, api_client) -> None:
        resp = api_client.client.delete("/secure/api/users/does-not-exist", headers=api_client.admin.headers)
        assert resp.status_code == 404

    def test_editor_forbidden(self, api_client) -> None:
        resp = api_client.client.delete(
            f"/secure/api/users/{api_client.reader.user.id}",
            headers=api_client.editor.headers,
        )
        assert resp.status_code == 403
        assert api_client.user_store.get_by_id(api_client.reader.user.id) is not None


class TestPatchRoles:
    def test_admin_grants_editor(self, api_client) -> None:
        target = api_client.add_user("Pat Target", {Role.USER})
        resp = api_client.client.patch(
            f"/secure/api/users/{target.user.id}",
            json={"roles": ["ROLE_EDITOR"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 200
        assert resp.json()["roles"] == ["ROLE_EDITOR", "ROLE_USER"]
        assert api_client.user_store.get_by_id(target.user.id).roles == {Role.USER, Role.EDITOR}

    def test_user_role_cannot_be_removed(self, api_client) -> None:
        target = api_client.add_user("Strip Target", {Role.USER, Role.EDITOR})
        resp = api_client.client.patch(
            f"/secure/api/users/{target.user.id}",
            json={"roles": []},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 200
        assert resp.json()["roles"] == ["ROLE_USER"]

    def test_self_patch_conflicts(self, api_client) -> None:
        admin_id = api_client.admin.user.id
        resp = api_client.client.patch(
            f"/secure/api/users/{admin_id}",
            json={"roles": ["ROLE_USER"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["message"] == "You cannot change the roles of your own logged on user."
        assert Role.ADMIN in api_client.user_store.get_by_id(admin_id).roles

    def test_self_patch_conflicts_even_with_invalid_body(self, api_client) -> None:
        resp = api_client.client.patch(
            f"/secure/api/users/{api_client.admin.user.id}",
            json={"roles": ["ROLE_GOD"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_unknown_role_rejected(self, api_client) -> None:
        resp = api_client.client.patch(
            f"/secure/api/users/{api_client.reader.user.id}",
            json={"roles": ["ROLE_GOD"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_unknown_user_404(self, api_client) -> None:
        resp = api_client.client.patch(
            "/secure/api/users/does-not-exist",
            json={"roles": ["ROLE_EDITOR"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 404

    def test_editor_cannot_promote_self_or_others(self, api_client) -> None:
        resp = api_client.client.patch(
            f"/secure/api/users/{api_client.reader.user.id}",
            json={"roles": ["ROLE_ADMIN"]},
            headers=api_client.editor.headers,
        )
        assert resp.status_code == 403
        assert api_client.user_store.get_by_id(api_client.reader.user.id).roles == {Role.USER}


class TestActuator:
    def test_admin_mints_token_used_by_monitoring(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/users/actuator", headers=api_client.admin.headers)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        token = resp.text

        claims = api_client.client.app.state.tokens.verify(token)
        assert claims.roles == frozenset({Role.ACTUATOR})

        info = api_client.client.get("/actuator/info", headers={"Authorization": f"Bearer {token}"})
        assert info.status_code == 200
        data = info.json()
        assert data["version"]
        assert data["users"] >= 4
        assert data["books"] >= 0

    def test_actuator_token_cannot_manage_users(self, api_client) -> None:
        token = api_client.client.get("/secure/api/users/actuator", headers=api_client.admin.headers).text
        resp = api_client.client.get("/secure/api/users", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403

    def test_actuator_user_roles_are_fixed(self, api_client) -> None:
        token = api_client.client.get("/secure/api/users/actuator", headers=api_client.admin.headers).text
        actuator = api_client.user_store.get_by_auth("local", "actuator")

        resp = api_client.client.patch(
            f"/secure/api/users/{actuator.id}",
            json={"roles": ["ROLE_ADMIN"]},
            headers=api_client.admin.headers,
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"
        assert api_client.user_store.get_by_id(actuator.id).roles == {Role.ACTUATOR}

        # The outstanding monitoring token gained nothing.
        listed = api_client.client.get("/secure/api/users", headers={"Authorization": f"Bearer {token}"})
        assert listed.status_code == 403
        info = api_client.client.get("/actuator/info", headers={"Authorization": f"Bearer {token}"})
        assert info.status_code == 200

    def test_editor_cannot_mint(self, api_client) -> None:
        resp = api_client.client.get("/secure/api/users/actuator", headers=api_client.editor.headers)
        assert resp.status_code == 403

    def test_info_rejects_plain_user(self, api_client) -> None:
        resp = api_client.client.get("/actuator/info", headers=api_client.reader.headers)
        assert resp.status_code == 403
