"""
Permission resolution.

Answers are always computed from the current committed relation rows, never
from relationship collections cached on loaded objects.
"""
from typing import Iterable, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import AclSettings
from app.features.permissions.models import Permission, Role, role_permission, user_permission, user_role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class PermissionResolver:
    """
    Computes effective permissions and answers yes/no checks.

    Holders of the super-admin role pass every check, including checks for
    permissions that do not exist.

    Empty name lists: ``has_any_permission(user, [])`` and
    ``has_any_role(user, [])`` are False, ``has_all_permissions(user, [])`` is
    True. The super-admin bypass applies before either rule.
    """

    def __init__(self, db: AsyncSession, settings: AclSettings):
        self.db = db
        self.settings = settings

    # ------------------------------------------------------------------
    # Fresh reads
    # ------------------------------------------------------------------

    async def role_names(self, user: User) -> Set[str]:
        stmt = (
            select(Role.name)
            .select_from(Role)
            .join(user_role, user_role.c.role_id == Role.id)
            .where(user_role.c.user_id == user.id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def direct_permissions(self, user: User) -> Set[str]:
        stmt = (
            select(Permission.name)
            .select_from(Permission)
            .join(user_permission, user_permission.c.permission_id == Permission.id)
            .where(user_permission.c.user_id == user.id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def role_permissions(self, user: User) -> Set[str]:
        stmt = (
            select(Permission.name)
            .select_from(Permission)
            .join(role_permission, role_permission.c.permission_id == Permission.id)
            .join(user_role, user_role.c.role_id == role_permission.c.role_id)
            .where(user_role.c.user_id == user.id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def effective_permissions(self, user: User) -> Set[str]:
        """Direct permissions plus every permission of the roles the user holds."""
        return await self.direct_permissions(user) | await self.role_permissions(user)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def is_super_admin(self, user: User) -> bool:
        return self.settings.super_admin_role in await self.role_names(user)

    async def has_permission(self, user: User, name: str) -> bool:
        if await self.is_super_admin(user):
            log.debug(f"User {user.id} is super admin - granted {name}")
            return True
        granted = name in await self.effective_permissions(user)
        log.debug(f"User {user.id} {'granted' if granted else 'denied'} {name}")
        return granted

    async def has_any_permission(self, user: User, names: Iterable[str]) -> bool:
        names = list(names)
        if await self.is_super_admin(user):
            return True
        effective = await self.effective_permissions(user)
        return any(name in effective for name in names)

    async def has_all_permissions(self, user: User, names: Iterable[str]) -> bool:
        names = list(names)
        if await self.is_super_admin(user):
            return True
        effective = await self.effective_permissions(user)
        return all(name in effective for name in names)

    async def has_role(self, user: User, name: str) -> bool:
        held = await self.role_names(user)
        return self.settings.super_admin_role in held or name in held

    async def has_any_role(self, user: User, names: Iterable[str]) -> bool:
        names = list(names)
        held = await self.role_names(user)
        if self.settings.super_admin_role in held:
            return True
        return any(name in held for name in names)
