"""
Role memberships and direct permission grants of a single user.

Two families of role operations live here:

- ``assign_roles_to_user`` / ``remove_roles_from_user`` keep their historical
  behaviour: both replace the user's role membership with the given names.
  The first merges the roles' permissions into the direct grants, the second
  revokes them without looking at the roles the user keeps.
- ``replace_roles`` / ``add_role`` / ``remove_role`` say what they do and
  compute the direct-grant delta against the roles the user keeps.
"""
from typing import Iterable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import AclSettings
from app.features.permissions import store
from app.features.permissions.audit import record_audit
from app.features.permissions.models import Permission, Role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def _carried(roles: Iterable[Role]) -> List[Permission]:
    """Permissions carried by the given roles, without duplicates."""
    seen = {}
    for role in roles:
        for permission in role.permissions:
            seen.setdefault(permission.id, permission)
    return list(seen.values())


def _merge(user: User, permissions: Iterable[Permission]) -> List[str]:
    held = {p.id for p in user.permissions}
    added = [p for p in permissions if p.id not in held]
    user.permissions.extend(added)
    return [p.name for p in added]


def _drop(user: User, names: Set[str]) -> List[str]:
    dropped = [p for p in user.permissions if p.name in names]
    for permission in dropped:
        user.permissions.remove(permission)
    return [p.name for p in dropped]


class UserGrantManager:
    """Mutates one user's roles and direct permissions, one transaction per call."""

    def __init__(self, db: AsyncSession, settings: AclSettings):
        self.db = db
        self.settings = settings

    async def _finish(self, user: User) -> User:
        await self.db.refresh(user)
        return user

    # ============================================================================
    # Direct permissions
    # ============================================================================

    async def give_permissions_to_user(
        self, actor: Optional[User], user: User, names: Iterable[str]
    ) -> User:
        """Add permissions to the user's direct grants. Role membership is untouched."""
        permissions = await store.resolve_permissions(self.db, names)

        async with store.atomic(self.db):
            added = _merge(user, permissions)
            record_audit(
                self.db, actor, "give_permissions", "user", user.id,
                {"permissions": [p.name for p in permissions], "added": added},
            )

        log.info(f"Gave {added} to user {user.id}")
        return await self._finish(user)

    async def revoke_permissions_from_user(
        self, actor: Optional[User], user: User, names: Iterable[str]
    ) -> User:
        """Remove permissions from the user's direct grants. Role-derived permissions stay."""
        permissions = await store.resolve_permissions(self.db, names)

        async with store.atomic(self.db):
            revoked = _drop(user, {p.name for p in permissions})
            record_audit(
                self.db, actor, "revoke_permissions", "user", user.id,
                {"permissions": [p.name for p in permissions], "revoked": revoked},
            )

        log.info(f"Revoked {revoked} from user {user.id}")
        return await self._finish(user)

    # ============================================================================
    # Role membership (historical semantics)
    # ============================================================================

    async def assign_roles_to_user(
        self, actor: Optional[User], user: User, role_names: Iterable[str]
    ) -> User:
        """
        Replace the user's roles with exactly role_names.

        Callers adding a role must pass the complete desired set. The
        permissions carried by those roles are merged into the user's direct
        grants; existing direct grants are kept.
        """
        roles = await store.resolve_roles(self.db, role_names)

        async with store.atomic(self.db):
            user.roles = roles
            added = _merge(user, _carried(roles))
            record_audit(
                self.db, actor, "assign_roles", "user", user.id,
                {"roles": [r.name for r in roles], "permissions_added": added},
            )

        log.info(f"User {user.id} roles set to {[r.name for r in roles]}")
        return await self._finish(user)

    async def remove_roles_from_user(
        self, actor: Optional[User], user: User, role_names: Iterable[str]
    ) -> User:
        """
        Replace the user's roles with exactly role_names, then revoke the
        permissions those roles carry from the direct grants.

        role_names is the set of roles the user ends up with, not the set to
        drop. The revocation ignores whether another role also carries the
        permission; use remove_role to detach a single role.
        """
        roles = await store.resolve_roles(self.db, role_names)

        async with store.atomic(self.db):
            user.roles = roles
            revoked = _drop(user, {p.name for p in _carried(roles)})
            record_audit(
                self.db, actor, "remove_roles", "user", user.id,
                {"roles": [r.name for r in roles], "permissions_revoked": revoked},
            )

        log.info(f"User {user.id} roles set to {[r.name for r in roles]}, revoked {revoked}")
        return await self._finish(user)

    # ============================================================================
    # Role membership (explicit operations)
    # ============================================================================

    async def replace_roles(
        self, actor: Optional[User], user: User, role_names: Iterable[str]
    ) -> User:
        """
        Make role_names the user's complete role set.

        Permissions of newly added roles are merged into the direct grants.
        Permissions of dropped roles are revoked from the direct grants unless
        a role the user keeps still carries them.
        """
        roles = await store.resolve_roles(self.db, role_names)
        wanted = {r.id for r in roles}
        current = {r.id for r in user.roles}

        added_roles = [r for r in roles if r.id not in current]
        dropped_roles = [r for r in user.roles if r.id not in wanted]
        still_carried = {p.name for p in _carried(roles)}
        to_revoke = {p.name for p in _carried(dropped_roles)} - still_carried

        async with store.atomic(self.db):
            user.roles = roles
            revoked = _drop(user, to_revoke)
            added = _merge(user, _carried(added_roles))
            record_audit(
                self.db, actor, "replace_roles", "user", user.id,
                {
                    "roles": [r.name for r in roles],
                    "permissions_added": added,
                    "permissions_revoked": revoked,
                },
            )

        log.info(f"User {user.id} roles replaced with {[r.name for r in roles]}")
        return await self._finish(user)

    async def add_role(self, actor: Optional[User], user: User, role_name: str) -> User:
        """Give the user one more role and merge its permissions into the direct grants."""
        (role,) = await store.resolve_roles(self.db, [role_name])

        async with store.atomic(self.db):
            if role.id not in {r.id for r in user.roles}:
                user.roles.append(role)
            added = _merge(user, role.permissions)
            record_audit(
                self.db, actor, "add_role", "user", user.id,
                {"role": role.name, "permissions_added": added},
            )

        log.info(f"Added role {role.name!r} to user {user.id}")
        return await self._finish(user)

    async def remove_role(self, actor: Optional[User], user: User, role_name: str) -> User:
        """
        Take one role away from the user. A role the user does not hold is a no-op.

        Its permissions are revoked from the direct grants, except those still
        carried by one of the user's remaining roles.
        """
        (role,) = await store.resolve_roles(self.db, [role_name])
        if role.id not in {r.id for r in user.roles}:
            return user

        remaining = [r for r in user.roles if r.id != role.id]
        to_revoke = role.permission_names - {p.name for p in _carried(remaining)}

        async with store.atomic(self.db):
            user.roles = remaining
            revoked = _drop(user, to_revoke)
            record_audit(
                self.db, actor, "remove_role", "user", user.id,
                {"role": role.name, "permissions_revoked": revoked},
            )

        log.info(f"Removed role {role.name!r} from user {user.id}")
        return await self._finish(user)
