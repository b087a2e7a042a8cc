"""
Tests for role lifecycle and the protection of the super admin role.
"""

import pytest
from sqlalchemy import select

from app.features.permissions import store
from app.features.permissions.exceptions import Conflict, Forbidden, NotFound, ReservedName
from app.features.permissions.grant_manager import UserGrantManager
from app.features.permissions.models import Role
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.role_manager import RoleManager
from app.features.users.lifecycle import UserLifecycle


@pytest.fixture
def roles(db, settings):
    return RoleManager(db, settings)


@pytest.fixture
def grants(db, settings):
    return UserGrantManager(db, settings)


class TestCreateRole:
    @pytest.mark.asyncio
    async def test_create_with_permissions(self, roles, make_permission, audit_count):
        await make_permission("blog_view")
        await make_permission("blog_update")

        role = await roles.create_role(
            None, "editor", display_name="Editor", permission_names=["blog_update", "blog_view"]
        )

        assert role.id
        assert role.display_name == "Editor"
        assert role.permission_names == {"blog_view", "blog_update"}
        assert role.created_at is not None
        assert await audit_count("create") == 1

    @pytest.mark.asyncio
    async def test_super_admin_name_is_reserved(self, roles, audit_count):
        with pytest.raises(ReservedName):
            await roles.create_role(None, "super-admin")
        assert await audit_count() == 0

    @pytest.mark.asyncio
    async def test_duplicate_name(self, roles, make_role):
        await make_role("editor")
        with pytest.raises(Conflict):
            await roles.create_role(None, "editor")

    @pytest.mark.asyncio
    async def test_unknown_permission(self, db, roles):
        with pytest.raises(NotFound) as exc_info:
            await roles.create_role(None, "editor", permission_names=["nope", "nada"])

        assert exc_info.value.missing == ["nada", "nope"]
        result = await db.execute(select(Role).where(Role.name == "editor"))
        assert result.scalar_one_or_none() is None


class TestUpdateRole:
    @pytest.mark.asyncio
    async def test_omitted_fields_are_kept(self, roles, make_permission):
        await make_permission("blog_view")
        role = await roles.create_role(
            None, "editor", display_name="Editor", description="Edits", permission_names=["blog_view"]
        )

        role = await roles.update_role(None, role, description="Edits posts")

        assert role.name == "editor"
        assert role.display_name == "Editor"
        assert role.description == "Edits posts"
        assert role.permission_names == {"blog_view"}

    @pytest.mark.asyncio
    async def test_permission_sync_replaces(self, roles, make_permission, make_role):
        for name in ("a", "b", "c"):
            await make_permission(name)
        role = await make_role("editor", ["a", "b"])

        role = await roles.update_role(None, role, permission_names=["b", "c"])

        assert role.permission_names == {"b", "c"}

    @pytest.mark.asyncio
    async def test_rename(self, roles, make_role):
        role = await make_role("editor")
        role = await roles.update_role(None, role, name="writer")
        assert role.name == "writer"

    @pytest.mark.asyncio
    async def test_rename_to_existing(self, roles, make_role):
        await make_role("writer")
        role = await make_role("editor")
        with pytest.raises(Conflict):
            await roles.update_role(None, role, name="writer")

    @pytest.mark.asyncio
    async def test_unique_violation_rolls_back(self, db, roles, make_role, audit_count, monkeypatch):
        await make_role("writer")
        role = await make_role("editor")
        role_id = role.id

        # Lose the race: the lookup misses, the unique index catches it on commit.
        async def _missing(db, name):
            return None

        monkeypatch.setattr(store, "find_role_by_name", _missing)

        with pytest.raises(Conflict):
            await roles.update_role(None, role, name="writer", description="changed")

        result = await db.execute(select(Role.name, Role.description).where(Role.id == role_id))
        assert tuple(result.one()) == ("editor", None)
        assert await audit_count() == 0

    @pytest.mark.asyncio
    async def test_rename_into_super_admin(self, roles, make_role):
        role = await make_role("editor")
        with pytest.raises(ReservedName):
            await roles.update_role(None, role, name="super-admin")

    @pytest.mark.asyncio
    async def test_super_admin_cannot_be_renamed(self, roles, super_admin_role):
        with pytest.raises(Forbidden):
            await roles.update_role(None, super_admin_role, name="root")
        assert super_admin_role.name == "super-admin"

    @pytest.mark.asyncio
    async def test_super_admin_permissions_cannot_be_synced(self, roles, super_admin_role, make_permission):
        await make_permission("blog_view")
        with pytest.raises(Forbidden):
            await roles.update_role(None, super_admin_role, permission_names=["blog_view"])

    @pytest.mark.asyncio
    async def test_super_admin_description_can_change(self, roles, super_admin_role):
        role = await roles.update_role(None, super_admin_role, description="Everything")
        assert role.description == "Everything"


class TestDeleteRole:
    @pytest.mark.asyncio
    async def test_conflict_until_unheld(self, db, roles, grants, make_permission, make_role, make_user, audit_count):
        await make_permission("blog_view")
        role = await make_role("editor", ["blog_view"])
        user = await make_user(roles=["editor"])

        with pytest.raises(Conflict):
            await roles.delete_role(None, role)

        await grants.remove_role(None, user, "editor")
        await roles.delete_role(None, role)

        result = await db.execute(select(Role).where(Role.name == "editor"))
        assert result.scalar_one_or_none() is None
        assert await audit_count("delete") == 1

    @pytest.mark.asyncio
    async def test_trashed_holder_still_blocks(self, roles, make_role, make_user):
        role = await make_role("editor")
        user = await make_user(roles=["editor"])
        await UserLifecycle(roles.db).trash(None, user)

        with pytest.raises(Conflict):
            await roles.delete_role(None, role)

    @pytest.mark.asyncio
    async def test_super_admin_cannot_be_deleted(self, roles, super_admin_role):
        with pytest.raises(Forbidden):
            await roles.delete_role(None, super_admin_role)


class TestRolePermissions:
    @pytest.mark.asyncio
    async def test_assign_and_remove_are_idempotent(self, roles, make_permission, make_role):
        await make_permission("a")
        await make_permission("b")
        role = await make_role("editor", ["a"])

        role = await roles.assign_permissions_to_role(None, role, ["a", "b"])
        role = await roles.assign_permissions_to_role(None, role, ["b"])
        assert role.permission_names == {"a", "b"}

        role = await roles.remove_permissions_from_role(None, role, ["a"])
        role = await roles.remove_permissions_from_role(None, role, ["a"])
        assert role.permission_names == {"b"}

    @pytest.mark.asyncio
    async def test_super_admin_permissions_are_frozen(self, roles, super_admin_role, make_permission, audit_count):
        await make_permission("blog_view")

        with pytest.raises(Forbidden):
            await roles.remove_permissions_from_role(None, super_admin_role, ["anything"])
        with pytest.raises(Forbidden):
            await roles.assign_permissions_to_role(None, super_admin_role, ["blog_view"])

        assert super_admin_role.permission_names == set()
        assert await audit_count() == 0

    @pytest.mark.asyncio
    async def test_role_holders_gain_permission(self, db, settings, roles, make_permission, make_role, make_user):
        await make_permission("blog_view")
        role = await make_role("editor")
        user = await make_user(roles=["editor"])
        resolver = PermissionResolver(db, settings)

        assert not await resolver.has_permission(user, "blog_view")
        await roles.assign_permissions_to_role(None, role, ["blog_view"])
        assert await resolver.has_permission(user, "blog_view")


class TestVisibility:
    @pytest.mark.asyncio
    async def test_super_admin_hidden_from_others(self, roles, super_admin, make_role, make_user):
        await make_role("editor")
        await make_role("viewer")
        someone = await make_user()

        names = [r.name for r in await roles.list_roles(someone)]
        assert names == ["editor", "viewer"]

        names = [r.name for r in await roles.list_roles(super_admin)]
        assert names == ["editor", "super-admin", "viewer"]

    @pytest.mark.asyncio
    async def test_get_super_admin_is_not_found_for_others(self, roles, super_admin, super_admin_role, make_user):
        someone = await make_user()

        with pytest.raises(NotFound):
            await roles.get_role(someone, super_admin_role.id)
        assert (await roles.get_role(super_admin, super_admin_role.id)).name == "super-admin"

    @pytest.mark.asyncio
    async def test_search_and_paging(self, roles, make_role):
        await make_role("blog-editor")
        await make_role("blog-viewer")
        await make_role("auditor")

        names = [r.name for r in await roles.list_roles(None, search="BLOG")]
        assert names == ["blog-editor", "blog-viewer"]

        names = [r.name for r in await roles.list_roles(None, skip=1, limit=1)]
        assert names == ["blog-editor"]
