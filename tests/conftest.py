"""
Shared fixtures: an in-memory database per test and small entity factories.
"""

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

from app.core.acl import DEFAULT_PERMISSIONS, RESERVED_PERMISSIONS, AclSettings
from app.core.database.engine import init_db, make_engine, make_session_factory
from app.features.permissions import store
from app.features.permissions.models import AuditLog, Permission, Role
from app.features.users.models import User


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory database with every table created."""
    engine = make_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    """Default ACL settings, independent of the environment."""
    return AclSettings(
        super_admin_role="super-admin",
        reserved_permissions=RESERVED_PERMISSIONS,
        permission_display_names={name: display for name, display, _ in DEFAULT_PERMISSIONS},
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_permission(db):
    async def _make(name, display_name=None, is_system=False):
        permission = Permission(name=name, display_name=display_name, is_system=is_system)
        db.add(permission)
        await db.commit()
        await db.refresh(permission)
        return permission

    return _make


@pytest.fixture
def make_role(db):
    async def _make(name, permissions=()):
        role = Role(name=name)
        role.permissions = await store.resolve_permissions(db, permissions)
        db.add(role)
        await db.commit()
        await db.refresh(role)
        return role

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(name=None, roles=(), permissions=(), **fields):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        user = User(email=f"{name}@example.com", name=name, **fields)
        user.roles = await store.resolve_roles(db, roles)
        user.permissions = await store.resolve_permissions(db, permissions)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def super_admin_role(make_role):
    return await make_role("super-admin")


@pytest_asyncio.fixture
async def super_admin(super_admin_role, make_user):
    return await make_user("root", roles=["super-admin"])


@pytest.fixture
def audit_count(db):
    """Number of audit rows, optionally for one action."""
    async def _count(action=None):
        stmt = select(func.count()).select_from(AuditLog)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        return (await db.execute(stmt)).scalar()

    return _count
