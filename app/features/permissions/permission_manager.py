"""
Permission lifecycle.
"""
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import AclSettings
from app.features.permissions import store
from app.features.permissions.audit import record_audit
from app.features.permissions.exceptions import Conflict, ReservedName
from app.features.permissions.models import Permission, user_permission
from app.features.permissions.protection import guard_permission, guard_roles
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

SUPER_ADMIN_PERMISSIONS_MESSAGE = "Cannot modify super admin role permissions."


class PermissionManager:
    """
    Creates, updates and deletes permissions.

    Permissions created here are never system permissions; system permissions
    come from the seed script and are immutable.
    """

    def __init__(self, db: AsyncSession, settings: AclSettings):
        self.db = db
        self.settings = settings

    def _check_reserved(self, name: str) -> None:
        if self.settings.is_reserved_permission(name):
            raise ReservedName("This permission name is reserved for system use.", label=name)

    async def _check_unique(self, name: str) -> None:
        if await store.find_permission_by_name(self.db, name) is not None:
            raise Conflict("Permission with this name already exists.")

    # ============================================================================
    # Reads
    # ============================================================================

    async def list_all(self) -> List[Permission]:
        """Every permission, ordered by name."""
        return await store.list_permissions(self.db)

    async def list_permissions(
        self, search: Optional[str] = None, skip: int = 0, limit: Optional[int] = 100
    ) -> List[Permission]:
        return await store.list_permissions(self.db, search=search, skip=skip, limit=limit)

    async def get_permission(self, permission_id: str) -> Permission:
        return await store.get_permission(self.db, permission_id)

    # ============================================================================
    # Lifecycle
    # ============================================================================

    async def create_permission(
        self,
        actor: Optional[User],
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        role_names: Optional[Iterable[str]] = None,
    ) -> Permission:
        """
        Create a non-system permission, optionally attached to roles.

        Raises:
            ReservedName: if name is a reserved permission name
            Conflict: if a permission with this name already exists
            NotFound: if a role name does not resolve
            Forbidden: if the super-admin role is among the roles
        """
        self._check_reserved(name)
        await self._check_unique(name)

        roles = await store.resolve_roles(self.db, role_names or [])
        guard_roles(roles, self.settings, SUPER_ADMIN_PERMISSIONS_MESSAGE)

        permission = Permission(
            name=name,
            display_name=display_name,
            description=description,
            is_system=False,
        )
        permission.roles = roles

        try:
            async with store.atomic(self.db):
                self.db.add(permission)
                await self.db.flush()
                record_audit(
                    self.db, actor, "create", "permission", permission.id,
                    {"name": name, "roles": [r.name for r in roles]},
                )
        except IntegrityError as e:
            raise Conflict("Permission with this name already exists.") from e

        await self.db.refresh(permission)
        log.info(f"Created permission {permission.name!r}")
        return permission

    async def update_permission(
        self,
        actor: Optional[User],
        permission: Permission,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        role_names: Optional[Iterable[str]] = None,
    ) -> Permission:
        """
        Update a permission; omitted fields keep their value.

        When role_names is given, the set of roles carrying the permission is
        replaced by exactly those roles.

        Raises:
            Forbidden: for system permissions, or if the super-admin role would
                gain or lose the permission
            ReservedName: when renaming to a reserved name
            Conflict: when renaming to an existing name
            NotFound: if a role name does not resolve
        """
        guard_permission(permission, "System permissions cannot be modified.")

        renaming = name is not None and name != permission.name
        if renaming:
            self._check_reserved(name)
            await self._check_unique(name)

        roles = None
        if role_names is not None:
            roles = await store.resolve_roles(self.db, role_names)
            current = {r.id for r in permission.roles}
            wanted = {r.id for r in roles}
            changed = [r for r in permission.roles if r.id not in wanted]
            changed += [r for r in roles if r.id not in current]
            guard_roles(changed, self.settings, SUPER_ADMIN_PERMISSIONS_MESSAGE)

        details = {}
        try:
            async with store.atomic(self.db):
                if renaming:
                    details["name"] = {"from": permission.name, "to": name}
                    permission.name = name
                if display_name is not None:
                    permission.display_name = details["display_name"] = display_name
                if description is not None:
                    permission.description = details["description"] = description
                if roles is not None:
                    permission.roles = roles
                    details["roles"] = [r.name for r in roles]
                record_audit(self.db, actor, "update", "permission", permission.id, details)
        except IntegrityError as e:
            raise Conflict("Permission with this name already exists.") from e

        await self.db.refresh(permission)
        log.info(f"Updated permission {permission.name!r}: {sorted(details)}")
        return permission

    async def delete_permission(self, actor: Optional[User], permission: Permission) -> None:
        """
        Delete a permission along with any direct user grants of it.

        Raises:
            Forbidden: for system permissions
            Conflict: while at least one role carries the permission
        """
        guard_permission(permission, "System permissions cannot be deleted.")

        if await store.count_permission_roles(self.db, permission.id) > 0:
            raise Conflict("Cannot delete permission that is assigned to roles.")

        result = await self.db.execute(
            select(User)
            .join(user_permission, user_permission.c.user_id == User.id)
            .where(user_permission.c.permission_id == permission.id)
            .execution_options(populate_existing=True)
        )
        holders = list(result.scalars().all())

        permission_id, permission_name = permission.id, permission.name
        async with store.atomic(self.db):
            for user in holders:
                if permission in user.permissions:
                    user.permissions.remove(permission)
            await self.db.delete(permission)
            record_audit(
                self.db, actor, "delete", "permission", permission_id,
                {"name": permission_name, "revoked_from_users": len(holders)},
            )

        log.info(f"Deleted permission {permission_name!r}")
