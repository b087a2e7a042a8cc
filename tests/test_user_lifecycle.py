"""
Tests for trashing, restoring, purging and status changes.
"""

import pytest
from sqlalchemy import func, select

from app.features.permissions.models import user_permission, user_role
from app.features.users.lifecycle import UserLifecycle
from app.features.users.models import User, UserState, UserStatus


@pytest.fixture
def lifecycle(db):
    return UserLifecycle(db)


async def _rows(db, table, user_id):
    stmt = select(func.count()).select_from(table).where(table.c.user_id == user_id)
    return (await db.execute(stmt)).scalar()


class TestTrash:
    @pytest.mark.asyncio
    async def test_trash_keeps_grants(self, db, lifecycle, make_permission, make_role, make_user, audit_count):
        await make_permission("blog_view")
        await make_role("editor")
        user = await make_user(roles=["editor"], permissions=["blog_view"])

        user = await lifecycle.trash(None, user)

        assert user.state == UserState.TRASHED
        assert user.trashed_at is not None
        assert await _rows(db, user_role, user.id) == 1
        assert await _rows(db, user_permission, user.id) == 1
        assert await audit_count("trash") == 1

    @pytest.mark.asyncio
    async def test_trash_and_restore_are_idempotent(self, lifecycle, make_user, audit_count):
        user = await make_user()

        await lifecycle.trash(None, user)
        await lifecycle.trash(None, user)
        assert user.is_trashed

        await lifecycle.restore(None, user)
        await lifecycle.restore(None, user)
        assert not user.is_trashed
        assert user.trashed_at is None

        assert await audit_count() == 2


class TestPurge:
    @pytest.mark.asyncio
    async def test_purge_removes_user_and_relations(self, db, lifecycle, make_permission, make_role, make_user):
        await make_permission("blog_view")
        await make_role("editor")
        user = await make_user(roles=["editor"], permissions=["blog_view"])
        user_id = user.id

        await lifecycle.purge(None, user)

        assert (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none() is None
        assert await _rows(db, user_role, user_id) == 0
        assert await _rows(db, user_permission, user_id) == 0


class TestStatus:
    @pytest.mark.asyncio
    async def test_change_status(self, lifecycle, make_user):
        user = await make_user()

        user = await lifecycle.change_status(None, user, UserStatus.SUSPENDED)

        assert user.status == UserStatus.SUSPENDED
        assert not user.is_active
