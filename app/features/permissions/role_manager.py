"""
Role lifecycle and role→permission attachment.
"""
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import AclSettings
from app.features.permissions import store
from app.features.permissions.audit import record_audit
from app.features.permissions.exceptions import Conflict, NotFound, ReservedName
from app.features.permissions.models import Role
from app.features.permissions.protection import guard_role, is_protected_role
from app.features.permissions.resolver import PermissionResolver
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class RoleManager:
    """
    Creates, updates and deletes roles and manages the permissions they carry.

    The super-admin role can be neither created, renamed, deleted, nor have its
    permission set changed, whatever the actor.
    """

    def __init__(self, db: AsyncSession, settings: AclSettings):
        self.db = db
        self.settings = settings

    async def _sees_super_admin(self, actor: Optional[User]) -> bool:
        if actor is None:
            return False
        return await PermissionResolver(self.db, self.settings).is_super_admin(actor)

    # ============================================================================
    # Reads
    # ============================================================================

    async def list_roles(
        self,
        actor: Optional[User],
        search: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = 100,
    ) -> List[Role]:
        """
        List roles ordered by name.

        The super-admin role is only listed for actors who hold it, so that
        nobody else can discover it.
        """
        excluded = [] if await self._sees_super_admin(actor) else [self.settings.super_admin_role]
        return await store.list_roles(self.db, exclude_names=excluded, search=search, skip=skip, limit=limit)

    async def get_role(self, actor: Optional[User], role_id: str) -> Role:
        """Fetch a role; the super-admin role is NotFound for non-holders."""
        role = await store.get_role(self.db, role_id)
        if is_protected_role(role, self.settings) and not await self._sees_super_admin(actor):
            raise NotFound("Role not found.", missing=[role_id])
        return role

    # ============================================================================
    # Lifecycle
    # ============================================================================

    async def create_role(
        self,
        actor: Optional[User],
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        permission_names: Optional[Iterable[str]] = None,
    ) -> Role:
        """
        Create a role and attach the given permissions.

        Raises:
            ReservedName: if name is the super-admin role name
            Conflict: if a role with this name already exists
            NotFound: if a permission name does not resolve
        """
        if name == self.settings.super_admin_role:
            raise ReservedName("Cannot create super admin role.", label=name)
        if await store.find_role_by_name(self.db, name) is not None:
            raise Conflict("Role with this name already exists.")

        permissions = await store.resolve_permissions(self.db, permission_names or [])

        role = Role(name=name, display_name=display_name, description=description)
        role.permissions = permissions

        try:
            async with store.atomic(self.db):
                self.db.add(role)
                await self.db.flush()
                record_audit(
                    self.db, actor, "create", "role", role.id,
                    {"name": name, "permissions": [p.name for p in permissions]},
                )
        except IntegrityError as e:
            raise Conflict("Role with this name already exists.") from e

        await self.db.refresh(role)
        log.info(f"Created role {role.name!r} with {len(permissions)} permissions")
        return role

    async def update_role(
        self,
        actor: Optional[User],
        role: Role,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        permission_names: Optional[Iterable[str]] = None,
    ) -> Role:
        """
        Update scalar fields; omitted fields keep their value.

        When permission_names is given, the role's permission set is replaced
        by exactly that set.

        Raises:
            Forbidden: renaming the super-admin role, or syncing its permissions
            ReservedName: renaming a role to the super-admin role name
            Conflict: renaming to an existing role name
            NotFound: if a permission name does not resolve
        """
        renaming = name is not None and name != role.name
        if renaming:
            guard_role(role, self.settings, "Cannot change super admin role name.")
            if name == self.settings.super_admin_role:
                raise ReservedName("Cannot rename a role to the super admin role name.", label=name)
            if await store.find_role_by_name(self.db, name) is not None:
                raise Conflict("Role with this name already exists.")

        permissions = None
        if permission_names is not None:
            guard_role(role, self.settings, "Cannot modify super admin role permissions.")
            permissions = await store.resolve_permissions(self.db, permission_names)

        details = {}
        try:
            async with store.atomic(self.db):
                if renaming:
                    details["name"] = {"from": role.name, "to": name}
                    role.name = name
                if display_name is not None:
                    role.display_name = details["display_name"] = display_name
                if description is not None:
                    role.description = details["description"] = description
                if permissions is not None:
                    role.permissions = permissions
                    details["permissions"] = [p.name for p in permissions]
                record_audit(self.db, actor, "update", "role", role.id, details)
        except IntegrityError as e:
            raise Conflict("Role with this name already exists.") from e

        await self.db.refresh(role)
        log.info(f"Updated role {role.name!r}: {sorted(details)}")
        return role

    async def delete_role(self, actor: Optional[User], role: Role) -> None:
        """
        Delete a role and its role→permission rows.

        Raises:
            Forbidden: for the super-admin role
            Conflict: while at least one user holds the role
        """
        guard_role(role, self.settings, "Cannot delete super admin role.")

        holders = await store.count_role_holders(self.db, role.id)
        if holders > 0:
            raise Conflict("Cannot delete role that is assigned to users.")

        role_id, role_name = role.id, role.name
        async with store.atomic(self.db):
            role.permissions.clear()
            await self.db.delete(role)
            record_audit(self.db, actor, "delete", "role", role_id, {"name": role_name})

        log.info(f"Deleted role {role_name!r}")

    # ============================================================================
    # Role permissions
    # ============================================================================

    async def assign_permissions_to_role(
        self, actor: Optional[User], role: Role, names: Iterable[str]
    ) -> Role:
        """Add permissions to a role. Already attached permissions are left alone."""
        guard_role(role, self.settings, "Cannot modify super admin role permissions.")
        permissions = await store.resolve_permissions(self.db, names)

        async with store.atomic(self.db):
            held = {p.id for p in role.permissions}
            added = [p for p in permissions if p.id not in held]
            role.permissions.extend(added)
            record_audit(
                self.db, actor, "assign_permissions", "role", role.id,
                {"permissions": [p.name for p in permissions]},
            )

        await self.db.refresh(role)
        log.info(f"Assigned {len(added)} permissions to role {role.name!r}")
        return role

    async def remove_permissions_from_role(
        self, actor: Optional[User], role: Role, names: Iterable[str]
    ) -> Role:
        """Detach permissions from a role. Permissions not attached are ignored."""
        guard_role(role, self.settings, "Cannot modify super admin role permissions.")
        permissions = await store.resolve_permissions(self.db, names)
        dropped = {p.id for p in permissions}

        async with store.atomic(self.db):
            for permission in [p for p in role.permissions if p.id in dropped]:
                role.permissions.remove(permission)
            record_audit(
                self.db, actor, "remove_permissions", "role", role.id,
                {"permissions": [p.name for p in permissions]},
            )

        await self.db.refresh(role)
        log.info(f"Removed permissions {sorted(p.name for p in permissions)} from role {role.name!r}")
        return role
