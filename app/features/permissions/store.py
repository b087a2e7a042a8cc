"""
Entity store for users, roles, permissions and their relations.

Pure data access: lookups, name resolution, reference counts and the
transaction scope mutations run in. Policy lives in the managers.
"""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import NotFound
from app.features.permissions.models import Permission, Role, role_permission, user_role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of writes as one transaction.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.

    Usage:
        async with atomic(db):
            role.permissions = permissions
            record_audit(db, actor, "update", "role", role.id)
    """
    try:
        yield db
        await db.commit()
    except Exception:
        log.debug("Rolling back transaction")
        await db.rollback()
        raise


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))


# ============================================================================
# Lookups
# ============================================================================

async def get_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found.", missing=[user_id])
    return user


async def get_role(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found.", missing=[role_id])
    return role


async def get_permission(db: AsyncSession, permission_id: str) -> Permission:
    result = await db.execute(select(Permission).where(Permission.id == permission_id))
    permission = result.scalar_one_or_none()
    if permission is None:
        raise NotFound("Permission not found.", missing=[permission_id])
    return permission


async def find_role_by_name(db: AsyncSession, name: str) -> Optional[Role]:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalar_one_or_none()


async def find_permission_by_name(db: AsyncSession, name: str) -> Optional[Permission]:
    result = await db.execute(select(Permission).where(Permission.name == name))
    return result.scalar_one_or_none()


async def resolve_roles(db: AsyncSession, names: Iterable[str]) -> List[Role]:
    """
    Resolve role names to Role rows, ordered by name.

    Raises:
        NotFound: if any name has no matching role
    """
    wanted = _unique(names)
    if not wanted:
        return []
    result = await db.execute(select(Role).where(Role.name.in_(wanted)).order_by(Role.name))
    roles = list(result.scalars().all())
    missing = set(wanted) - {role.name for role in roles}
    if missing:
        raise NotFound("One or more roles do not exist.", missing=missing)
    return roles


async def resolve_permissions(db: AsyncSession, names: Iterable[str]) -> List[Permission]:
    """
    Resolve permission names to Permission rows, ordered by name.

    Raises:
        NotFound: if any name has no matching permission
    """
    wanted = _unique(names)
    if not wanted:
        return []
    result = await db.execute(
        select(Permission).where(Permission.name.in_(wanted)).order_by(Permission.name)
    )
    permissions = list(result.scalars().all())
    missing = set(wanted) - {permission.name for permission in permissions}
    if missing:
        raise NotFound("One or more permissions do not exist.", missing=missing)
    return permissions


# ============================================================================
# Reference counts
# ============================================================================

async def count_role_holders(db: AsyncSession, role_id: str) -> int:
    """Number of users (trashed ones included) holding a role."""
    result = await db.execute(
        select(func.count()).select_from(user_role).where(user_role.c.role_id == role_id)
    )
    return result.scalar() or 0


async def count_permission_roles(db: AsyncSession, permission_id: str) -> int:
    """Number of roles carrying a permission."""
    result = await db.execute(
        select(func.count()).select_from(role_permission).where(role_permission.c.permission_id == permission_id)
    )
    return result.scalar() or 0


# ============================================================================
# Listings
# ============================================================================

def search_filter(search: Optional[str], *columns):
    """Case-insensitive substring match on any of the given columns."""
    pattern = f"%{search.strip().lower()}%"
    return or_(*(func.lower(column).like(pattern) for column in columns))


async def list_roles(
    db: AsyncSession,
    exclude_names: Iterable[str] = (),
    search: Optional[str] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[Role]:
    stmt = select(Role)
    excluded = list(exclude_names)
    if excluded:
        stmt = stmt.where(Role.name.not_in(excluded))
    if search:
        stmt = stmt.where(search_filter(search, Role.name, Role.display_name, Role.description))
    stmt = stmt.order_by(Role.name).offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_permissions(
    db: AsyncSession,
    search: Optional[str] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[Permission]:
    stmt = select(Permission)
    if search:
        stmt = stmt.where(search_filter(search, Permission.name, Permission.display_name, Permission.description))
    stmt = stmt.order_by(Permission.name).offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
