"""
HTTP tests: bearer authentication, gate checks and status code mapping.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core import config
from app.core.database.engine import get_db
from app.features.users.models import UserState, UserStatus
from app.main import app, limiter


def token_for(user_id, expires_in=timedelta(minutes=5)):
    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def auth(user):
    return {"Authorization": f"Bearer {token_for(user.id)}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    limiter.reset()
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def catalog(make_permission, make_role):
    for name in ("role_view", "role_create", "user_view", "assign_role", "blog_update"):
        await make_permission(name, is_system=True)
    await make_role("editor", ["blog_update"])
    await make_role("viewer", ["role_view"])


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/roles")
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthenticated."}

    @pytest.mark.asyncio
    async def test_expired_token(self, client, make_user):
        user = await make_user()
        headers = {"Authorization": f"Bearer {token_for(user.id, timedelta(minutes=-5))}"}

        response = await client.get("/users/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user_is_unauthenticated(self, client):
        response = await client.get("/users/me", headers={"Authorization": f"Bearer {token_for('nobody')}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, client, catalog, make_user):
        user = await make_user("alice", roles=["viewer"])

        response = await client.get("/users/me", headers=auth(user))

        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "alice@example.com"
        assert [r["name"] for r in body["roles"]] == ["viewer"]
        assert body["last_login_at"] is not None

    @pytest.mark.asyncio
    async def test_trashed_user_is_unauthenticated(self, client, make_user):
        user = await make_user(state=UserState.TRASHED)

        response = await client.get("/users/me", headers=auth(user))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_suspended_user_is_rejected(self, client, make_user):
        user = await make_user(status=UserStatus.SUSPENDED)

        response = await client.get("/users/me", headers=auth(user))
        assert response.status_code == 403
        assert response.json()["detail"] == "User account is deactivated"


# =============================================================================
# Roles
# =============================================================================


class TestRoleRoutes:
    @pytest.mark.asyncio
    async def test_forbidden_carries_display_name(self, client, catalog, make_user):
        user = await make_user(roles=["viewer"])

        response = await client.post("/roles", json={"name": "auditor"}, headers=auth(user))

        assert response.status_code == 403
        assert response.json() == {"detail": "You do not have permission to Create Roles."}

    @pytest.mark.asyncio
    async def test_create_conflict_and_not_found(self, client, catalog, super_admin):
        response = await client.post(
            "/roles", json={"name": "auditor", "permissions": ["role_view"]}, headers=auth(super_admin)
        )
        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "auditor"
        assert [p["name"] for p in body["permissions"]] == ["role_view"]

        response = await client.post("/roles", json={"name": "auditor"}, headers=auth(super_admin))
        assert response.status_code == 409

        response = await client.get("/roles/01HZZZZZZZZZZZZZZZZZZZZZZZ", headers=auth(super_admin))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_name(self, client, super_admin):
        response = await client.post("/roles", json={"name": "bad name!"}, headers=auth(super_admin))
        assert response.status_code == 400
        assert "name" in response.json()

    @pytest.mark.asyncio
    async def test_super_admin_role_is_hidden(self, client, catalog, super_admin, super_admin_role, make_user):
        viewer = await make_user(roles=["viewer"])

        response = await client.get("/roles", headers=auth(viewer))
        assert [r["name"] for r in response.json()] == ["editor", "viewer"]

        response = await client.get(f"/roles/{super_admin_role.id}", headers=auth(viewer))
        assert response.status_code == 404

        response = await client.get("/roles", headers=auth(super_admin))
        assert "super-admin" in [r["name"] for r in response.json()]

    @pytest.mark.asyncio
    async def test_super_admin_permissions_are_frozen(self, client, catalog, super_admin, super_admin_role):
        response = await client.request(
            "DELETE",
            f"/roles/{super_admin_role.id}/permissions",
            json={"permissions": ["anything"]},
            headers=auth(super_admin),
        )
        assert response.status_code == 403
        assert response.json() == {"detail": "Cannot modify super admin role permissions."}

    @pytest.mark.asyncio
    async def test_delete_role_in_use(self, client, catalog, super_admin, make_user):
        await make_user(roles=["editor"])
        roles = (await client.get("/roles", params={"search": "editor"}, headers=auth(super_admin))).json()

        response = await client.delete(f"/roles/{roles[0]['id']}", headers=auth(super_admin))
        assert response.status_code == 409


# =============================================================================
# Permissions
# =============================================================================


class TestPermissionRoutes:
    @pytest.mark.asyncio
    async def test_reserved_name(self, client, super_admin):
        response = await client.post("/permissions", json={"name": "user_view"}, headers=auth(super_admin))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_system_permission_cannot_be_deleted(self, client, catalog, super_admin):
        permissions = (await client.get("/permissions/all", headers=auth(super_admin))).json()
        blog_update = next(p for p in permissions if p["name"] == "blog_update")

        response = await client.delete(f"/permissions/{blog_update['id']}", headers=auth(super_admin))
        assert response.status_code == 403


# =============================================================================
# User grants
# =============================================================================


class TestUserGrantRoutes:
    @pytest.mark.asyncio
    async def test_assign_roles_replaces(self, client, catalog, super_admin, make_user):
        user = await make_user(roles=["editor", "viewer"])

        response = await client.put(
            f"/users/{user.id}/roles", json={"roles": ["viewer"]}, headers=auth(super_admin)
        )

        assert response.status_code == 200
        assert [r["name"] for r in response.json()["roles"]] == ["viewer"]

    @pytest.mark.asyncio
    async def test_own_permissions_are_visible(self, client, catalog, make_user):
        user = await make_user(roles=["editor"])
        other = await make_user()

        response = await client.get(f"/users/{user.id}/permissions", headers=auth(user))
        assert response.status_code == 200
        assert response.json()["all_permissions"] == ["blog_update"]
        assert response.json()["is_super_admin"] is False

        response = await client.get(f"/users/{other.id}/permissions", headers=auth(user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_grant_then_check(self, client, catalog, super_admin, make_user):
        user = await make_user()

        response = await client.get("/roles", headers=auth(user))
        assert response.status_code == 403

        response = await client.post(
            f"/users/{user.id}/permissions", json={"permissions": ["role_view"]}, headers=auth(super_admin)
        )
        assert response.status_code == 200

        response = await client.get("/roles", headers=auth(user))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_empty_permission_list_is_rejected(self, client, super_admin):
        response = await client.post(
            f"/users/{super_admin.id}/permissions", json={"permissions": []}, headers=auth(super_admin)
        )
        assert response.status_code == 400


# =============================================================================
# User lifecycle and audit
# =============================================================================


class TestLifecycleRoutes:
    @pytest.mark.asyncio
    async def test_trash_restore_purge(self, client, super_admin, make_user):
        user = await make_user("bob")

        response = await client.delete(f"/users/{user.id}", headers=auth(super_admin))
        assert response.json()["state"] == "trashed"

        trashed = (await client.get("/users", params={"trashed_only": True}, headers=auth(super_admin))).json()
        assert [u["name"] for u in trashed] == ["bob"]

        response = await client.post(f"/users/{user.id}/restore", headers=auth(super_admin))
        assert response.json()["state"] == "active"

        response = await client.delete(f"/users/{user.id}/purge", headers=auth(super_admin))
        assert response.status_code == 204

        response = await client.get(f"/users/{user.id}", headers=auth(super_admin))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_audit_log(self, client, super_admin, make_user):
        user = await make_user()
        await client.patch(f"/users/{user.id}/status", json={"status": "inactive"}, headers=auth(super_admin))

        response = await client.get("/audit-logs", headers=auth(super_admin))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["action"] == "change_status"
        assert body["items"][0]["actor_id"] == super_admin.id
        assert body["items"][0]["details"] == {"from": "active", "to": "inactive"}

    @pytest.mark.asyncio
    async def test_paging_bounds(self, client, super_admin):
        for params in ({"limit": -1}, {"limit": 0}, {"skip": -5}):
            response = await client.get("/audit-logs", params=params, headers=auth(super_admin))
            assert response.status_code == 400
            assert set(response.json()) == set(params)

        response = await client.get("/audit-logs", params={"skip": 2, "limit": 2}, headers=auth(super_admin))
        body = response.json()
        assert body["page"] == 2
        assert body["pages"] == 0


# =============================================================================
# Rate limiting
# =============================================================================


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_requests_over_the_limit_are_rejected(self, client):
        allowed = int(config.RATE_LIMIT.split("/")[0])

        for _ in range(allowed):
            response = await client.get("/health")
            assert response.status_code == 200

        response = await client.get("/health")
        assert response.status_code == 429
        assert response.json() == {"error": "You are going too fast"}

    @pytest.mark.asyncio
    async def test_limit_is_kept_per_token(self, client, make_user):
        allowed = int(config.RATE_LIMIT.split("/")[0])
        user = await make_user()

        for _ in range(allowed + 1):
            await client.get("/health")

        response = await client.get("/health", headers=auth(user))
        assert response.status_code == 200
